"""Local file storage for uploaded media."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Protocol

from src.errors import CollaboratorError

logger = logging.getLogger(__name__)


class FileStorage(Protocol):
    def put(self, data: bytes, filename: str) -> str: ...

    def delete(self, path: str) -> None: ...


class LocalFileStorage:
    """Stores files under a root directory with a unique prefix per upload."""

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def put(self, data: bytes, filename: str) -> str:
        # Only the base name is kept so uploads cannot escape the root
        safe_name = Path(filename).name or "upload"
        path = self.root / f"{uuid.uuid4().hex}-{safe_name}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise CollaboratorError("file_storage", f"could not write {path}: {exc}") from exc
        logger.info("Stored %d bytes at %s", len(data), path)
        return str(path)

    def delete(self, path: str) -> None:
        """Remove *path*; a file that is already gone is not an error."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as exc:
            raise CollaboratorError("file_storage", f"could not delete {path}: {exc}") from exc
