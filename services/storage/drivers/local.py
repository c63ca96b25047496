import asyncio
from pathlib import Path

from shared.errors import ErrorKind, GenerationError
from shared.models import StoredObject
from shared.utils import config, ensure_directory

from .base import ObjectStore


class LocalObjectStore(ObjectStore):
    """Files under the media root, served by the app at ``/media``."""

    name = "local"

    def __init__(self, root: str | None = None, base_url: str | None = None) -> None:
        self.root = Path(root or config.get("media_root", "/app/media")).resolve()
        self.base_url = (base_url or config.get("cdn_base_url") or "/media").rstrip("/")
        ensure_directory(str(self.root))

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise GenerationError(f"Key escapes storage root: {key}", ErrorKind.USER, code="INVALID_KEY", status_code=400)
        return path

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    async def upload(self, data: bytes, folder: str, filename: str, content_type: str) -> StoredObject:
        key = self.build_key(folder, filename)
        path = self._path(key)
        await asyncio.to_thread(self._write, path, data)
        return StoredObject(key=key, url=self.public_url(key), size=len(data), content_type=content_type)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        ensure_directory(str(path.parent))
        path.write_bytes(data)

    async def download(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise GenerationError(f"Object not found: {key}", ErrorKind.USER, code="RESOURCE_NOT_FOUND", status_code=404)
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def exists(self, key: str) -> bool:
        return self._path(key).exists()
