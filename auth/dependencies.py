"""
FastAPI dependency functions for authentication.

Used with Depends() on the management routes in main.py.
"""

from fastapi import Depends
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from .service import authenticate_user

# HTTP Basic authentication scheme
security = HTTPBasic(realm="QR Link management")


def get_current_user(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """
    Dependency that retrieves and validates the current user.

    Args:
        credentials (HTTPBasicCredentials): Automatically provided by FastAPI.

    Returns:
        str: The authenticated username.
    """
    return authenticate_user(credentials.username, credentials.password)
