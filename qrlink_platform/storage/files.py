"""
On-disk layout for version artifacts.

    <root>/qr-code-<code_id>/v<version_id>.png
    <root>/qr-code-<code_id>/logos/logo_v<version_id>.<png|jpg>

Paths are derived only from immutable ids, so renaming a slug never moves a
file. Paths stored on Version records are relative to the root.

Creation failures raise StorageFailure. Removal is best-effort: failures are
logged and reported through the return value, and removing something already
gone counts as success, so a retry is always safe.
"""

import io
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Union

from PIL import Image

from ..errors import StorageFailure, ValidationError

log = logging.getLogger(__name__)

LOGO_EXTENSIONS = ("png", "jpg", "jpeg")
_SNIFFED_EXTENSIONS = {"PNG": "png", "JPEG": "jpg"}


def sniff_image(data: bytes) -> str:
    """
    Identify PNG/JPEG bytes by content, never by filename.

    Returns:
        str: "png" or "jpg".

    Raises:
        ValidationError: for anything that is not a readable PNG or JPEG.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ValidationError("Invalid image type. Only PNG and JPEG allowed.") from e
    if fmt not in _SNIFFED_EXTENSIONS:
        raise ValidationError("Invalid image type. Only PNG and JPEG allowed.")
    return _SNIFFED_EXTENSIONS[fmt]


class VersionFileLayout:
    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    # ---- Naming -----------------------------------------------------------

    @staticmethod
    def code_folder(code_id: int) -> str:
        return f"qr-code-{code_id}"

    @staticmethod
    def image_filename(version_id: int) -> str:
        return f"v{version_id}.png"

    @staticmethod
    def logo_filename(version_id: int, extension: str = "png") -> str:
        return f"logo_v{version_id}.{extension}"

    def relative_image_path(self, code_id: int, version_id: int) -> str:
        return f"{self.code_folder(code_id)}/{self.image_filename(version_id)}"

    def relative_logo_path(self, code_id: int, version_id: int, extension: str = "png") -> str:
        return f"{self.code_folder(code_id)}/logos/{self.logo_filename(version_id, extension)}"

    def code_dir(self, code_id: int) -> Path:
        return self.root / self.code_folder(code_id)

    def logos_dir(self, code_id: int) -> Path:
        return self.code_dir(code_id) / "logos"

    def image_path(self, code_id: int, version_id: int) -> Path:
        return self.code_dir(code_id) / self.image_filename(version_id)

    def logo_path(self, code_id: int, version_id: int, extension: str = "png") -> Path:
        return self.logos_dir(code_id) / self.logo_filename(version_id, extension)

    # ---- Creation ---------------------------------------------------------

    def ensure_code_dirs(self, code_id: int) -> None:
        try:
            self.logos_dir(code_id).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error("Failed to create folder structure for code %s: %s", code_id, e)
            raise StorageFailure("Failed to create folder structure") from e

    def _write(self, target: Path, data: bytes) -> None:
        """Write to a temp file in the same directory, then rename into place."""
        fd, tmp = tempfile.mkstemp(dir=str(target.parent), prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, target)
        except OSError as e:
            self._unlink(Path(tmp))
            log.error("Failed to save file %s: %s", target, e)
            raise StorageFailure("Failed to save file") from e

    def write_image(self, code_id: int, version_id: int, data: bytes) -> str:
        self.ensure_code_dirs(code_id)
        self._write(self.image_path(code_id, version_id), data)
        return self.relative_image_path(code_id, version_id)

    def write_logo(self, code_id: int, version_id: int, data: bytes, extension: str) -> str:
        self.ensure_code_dirs(code_id)
        # One logo per version: drop a previous logo saved under another extension.
        for ext in LOGO_EXTENSIONS:
            if ext != extension:
                self._unlink(self.logo_path(code_id, version_id, ext))
        self._write(self.logo_path(code_id, version_id, extension), data)
        return self.relative_logo_path(code_id, version_id, extension)

    # ---- Removal (best-effort) --------------------------------------------

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return True
        except OSError as e:
            log.warning("Failed to delete file %s: %s", path, e)
            return False
        return True

    def remove_version_files(self, code_id: int, version_id: int) -> bool:
        ok = self._unlink(self.image_path(code_id, version_id))
        for ext in LOGO_EXTENSIONS:
            ok = self._unlink(self.logo_path(code_id, version_id, ext)) and ok
        return ok

    def remove_code_dir(self, code_id: int) -> bool:
        folder = self.code_dir(code_id)
        if not folder.exists():
            return True
        try:
            shutil.rmtree(folder)
        except OSError as e:
            log.warning("Failed to delete folder %s: %s", folder, e)
            return False
        return True
