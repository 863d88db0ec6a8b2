from .base import BaseStorage, VersionTransaction
from .files import VersionFileLayout
from .storage import Storage
from .storage_factory import get_storage

__all__ = ["BaseStorage", "VersionTransaction", "VersionFileLayout", "Storage", "get_storage"]
