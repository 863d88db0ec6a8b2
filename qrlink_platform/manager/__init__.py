from .code_manager import CodeManager
from .favorites import FavoriteCoordinator
from .redirect import RedirectResolver
from .slugs import SlugValidator
from .version_manager import VersionManager, default_style_config

__all__ = [
    "CodeManager",
    "FavoriteCoordinator",
    "RedirectResolver",
    "SlugValidator",
    "VersionManager",
    "default_style_config",
]
