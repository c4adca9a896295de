"""Project-scoped storage for uploaded PDF files.

Files live under ``<upload_dir>/<project_id>/`` with a generated unique name;
the original file name is kept only for display.
"""

import re
import time
import uuid
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class StoredFile(BaseModel):
    """A saved upload.

    Attributes:
        path: Path relative to the upload directory
        file_name: Original (display) file name
        size_bytes: Number of bytes written
    """

    path: str
    file_name: str
    size_bytes: int = Field(ge=0)


def unique_filename(original_name: str) -> str:
    """Generate a collision-free storage name that keeps the extension.

    Example:
        >>> unique_filename("My Paper (v2).pdf")  # doctest: +SKIP
        'My_Paper__v2__1718000000000_3f9a1c2b.pdf'
    """
    original = Path(original_name)
    stem = _UNSAFE_NAME_CHARS.sub("_", original.stem)[:50]
    millis = int(time.time() * 1000)
    return f"{stem}_{millis}_{uuid.uuid4().hex[:8]}{original.suffix}"


class FileStore:
    """Saves, reads and deletes uploaded files."""

    def __init__(self, upload_dir: Path | str = "data/uploads/pdfs"):
        self.upload_dir = Path(upload_dir)

    def _resolve(self, path: str) -> Path:
        full_path = (self.upload_dir / path).resolve()
        if not full_path.is_relative_to(self.upload_dir.resolve()):
            raise ValueError(f"Path {path!r} escapes the upload directory")
        return full_path

    def save(self, project_id: str, data: bytes, original_name: str) -> StoredFile:
        """Write ``data`` into the project's directory."""
        project_dir = self.upload_dir / _UNSAFE_NAME_CHARS.sub("_", project_id)
        project_dir.mkdir(parents=True, exist_ok=True)

        file_name = unique_filename(original_name)
        (project_dir / file_name).write_bytes(data)
        relative = f"{project_dir.name}/{file_name}"
        logger.debug(f"Saved {original_name!r} ({len(data)} bytes) as {relative}")
        return StoredFile(path=relative, file_name=original_name, size_bytes=len(data))

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> None:
        """Delete a stored file; a missing file is logged and ignored."""
        try:
            self._resolve(path).unlink()
        except FileNotFoundError:
            logger.info(f"Could not delete file {path}: not found")
