"""
Configuration for the auth module.

Operator accounts for the management API. The single admin account is read
from the environment; the password may be stored plain or as a SHA256 hex
digest (see utils.hash_password).

- QRLINK_ADMIN_USER     : username (default "qr_admin")
- QRLINK_ADMIN_PASSWORD : password or its SHA256 digest (default "qr_admin")
"""

from typing import Dict
import os

# In-memory user store (username → password or SHA256 digest)
USERS: Dict[str, str] = {
    os.getenv("QRLINK_ADMIN_USER", "qr_admin"): os.getenv("QRLINK_ADMIN_PASSWORD", "qr_admin"),
}
