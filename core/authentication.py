from rest_framework.authentication import TokenAuthentication


class BearerTokenAuthentication(TokenAuthentication):
    """
    DRF token authentication that accepts 'Authorization: Bearer <key>',
    which is what the mobile client sends.
    """
    keyword = 'Bearer'
