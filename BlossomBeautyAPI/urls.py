"""
URL configuration for BlossomBeautyAPI project.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

# Prometheus metrics
from django_prometheus.exports import ExportToDjangoView


def api_root(request):
    """Root API endpoint showing available endpoints"""
    return JsonResponse({
        'message': 'Welcome to Blossom Beauty API',
        'version': '1.0.0',
        'endpoints': {
            'docs': '/api/docs/',
            'schema': '/api/schema/',
            'admin': '/admin/',
            'payments': '/api/v1/payments/',
        },
    })


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='docs'),
    path('metrics', ExportToDjangoView, name='prometheus-metrics'),  # Prometheus metrics endpoint
    # v1 namespace
    path('api/v1/payments/', include('finance.payment.urls', namespace='payment')),
]

# default: "Django Administration"
admin.site.site_header = 'Blossom Beauty'
# default: "Site administration"
admin.site.index_title = 'Blossom Beauty'
admin.site.site_title = 'Blossom Beauty'
