import uuid
from pathlib import Path

from cutline.config import get_settings


class LocalStorageService:
    """Local file storage for ingested media sources."""

    def __init__(self, base_path: str | Path | None = None) -> None:
        self.base_path = Path(base_path or get_settings().local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = self.base_path / storage_key
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def new_storage_key(self, filename: str) -> str:
        """Unique key that keeps the original extension."""
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        name = uuid.uuid4().hex
        return f"assets/{name}.{ext}" if ext else f"assets/{name}"

    def upload_file_from_bytes(self, storage_key: str, data: bytes) -> str:
        """Write bytes and return the local path usable as a source locator."""
        full_path = self._get_full_path(storage_key)
        full_path.write_bytes(data)
        return str(full_path)

