"""
Auth package for the QR Link management API.

HTTP Basic authentication for the operator-facing endpoints (POST /api,
POST /api/upload). The public redirect path is never authenticated.
"""
