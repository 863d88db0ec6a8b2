"""
Utility functions for the auth module.
"""

import hashlib
import hmac


def hash_password(password: str) -> str:
    """
    Return a SHA256 hex digest of the given password.

    Note:
        Suitable for an operator account configured through the environment.
        Use a slow hash (e.g. passlib[bcrypt]) if accounts ever move to a database.
    """
    return hashlib.sha256(password.encode()).hexdigest()


def password_matches(stored: str, candidate: str) -> bool:
    """Constant-time comparison against a plain or SHA256-hashed stored password."""
    stored_b = stored.encode()
    return hmac.compare_digest(stored_b, candidate.encode()) or hmac.compare_digest(
        stored_b, hash_password(candidate).encode()
    )
