"""Document file store abstraction and local filesystem implementation."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Protocol

from slugify import slugify

if TYPE_CHECKING:
    from pathlib import Path
    from uuid import UUID

    from service_ledger.models import DocumentFile


class FileStore(Protocol):
    """Protocol for uploaded document storage backends."""

    def save(self, vehicle_id: UUID, document: DocumentFile) -> str: ...

    def public_url(self, key: str) -> str: ...

    def get_path(self, key: str) -> Path: ...

    def exists(self, key: str) -> bool: ...


class LocalFileStore:
    """Local filesystem implementation of FileStore.

    Directory layout: {root}/{vehicle_id}/{YYYYMMDDTHHMMSS}__{name}.{ext}
    """

    def __init__(self, root: Path, base_url: str | None = None) -> None:
        self.root = root
        self.base_url = base_url

    def save(self, vehicle_id: UUID, document: DocumentFile) -> str:
        """Save the document and return its key relative to the store root."""
        dir_path = self.root / str(vehicle_id)
        dir_path.mkdir(parents=True, exist_ok=True)

        stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%S")
        stem, ext = self._split_name(document.filename)
        filename = f"{stamp}__{stem}{ext}"
        file_path = dir_path / filename

        # Handle duplicates by appending numeric suffix
        counter = 1
        while file_path.exists():
            counter += 1
            filename = f"{stamp}__{stem}_{counter}{ext}"
            file_path = dir_path / filename

        file_path.write_bytes(document.data)
        return file_path.relative_to(self.root).as_posix()

    def public_url(self, key: str) -> str:
        """Return a fetchable URL for a stored key."""
        if self.base_url:
            return f"{self.base_url.rstrip('/')}/{key}"
        return self.get_path(key).resolve().as_uri()

    def get_path(self, key: str) -> Path:
        """Return the absolute path for a store key."""
        return self.root / key

    def exists(self, key: str) -> bool:
        """Check whether a file exists in the store."""
        return (self.root / key).exists()

    @staticmethod
    def _split_name(filename: str) -> tuple[str, str]:
        """Split a file name into a filesystem-safe slug and extension."""
        name = PurePosixPath(filename.replace("\\", "/")).name
        path = PurePosixPath(name)
        ext = slugify(path.suffix, max_length=10)
        stem = str(slugify(path.stem, max_length=50)) or "document"
        return stem, f".{ext}" if ext else ""
