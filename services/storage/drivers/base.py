from abc import ABC, abstractmethod

from shared.models import StoredObject
from shared.utils import sanitize_filename


class ObjectStore(ABC):
    """Abstract base class for object storage drivers."""

    name = "base"

    @staticmethod
    def build_key(folder: str, filename: str) -> str:
        folder = folder.strip("/")
        filename = sanitize_filename(filename)
        return f"{folder}/{filename}" if folder else filename

    @abstractmethod
    async def upload(self, data: bytes, folder: str, filename: str, content_type: str) -> StoredObject:
        """Store bytes and return the key and public URL."""
        pass

    @abstractmethod
    async def download(self, key: str) -> bytes:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    def public_url(self, key: str) -> str:
        pass
