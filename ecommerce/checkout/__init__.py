"""
Device-side M-Pesa checkout: the payment session state machine, its timers
and the REST client it talks to the payment relay with.
"""
