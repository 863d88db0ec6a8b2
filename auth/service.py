"""
Core authentication logic.

Validates HTTP Basic credentials against the operator accounts in
auth.config. Failures always answer 401 with a Basic challenge and never
reveal whether the username exists.
"""

from fastapi import HTTPException, status
from .config import USERS
from .utils import password_matches


def authenticate_user(username: str, password: str) -> str:
    """
    Authenticate a user by validating their username and password.

    Args:
        username (str): The username provided by the client.
        password (str): The password provided by the client.

    Returns:
        str: The authenticated username.

    Raises:
        HTTPException: If authentication fails (401 Unauthorized).
    """
    stored_password = USERS.get(username)

    if stored_password is not None and password_matches(stored_password, password):
        return username

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Basic"},
    )
