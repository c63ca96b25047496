"""Object storage driver implementations"""

from shared.utils import config

from .base import ObjectStore
from .local import LocalObjectStore
from .s3 import S3ObjectStore

STORAGE_DRIVERS: dict[str, type[ObjectStore]] = {
    LocalObjectStore.name: LocalObjectStore,
    S3ObjectStore.name: S3ObjectStore,
}


def create_object_store(name: str | None = None) -> ObjectStore:
    driver_name = name or config.get("storage_driver", "local")
    driver_cls = STORAGE_DRIVERS.get(driver_name)
    if driver_cls is None:
        raise ValueError(f"Storage driver '{driver_name}' is not configured")
    return driver_cls()


__all__ = ["STORAGE_DRIVERS", "LocalObjectStore", "ObjectStore", "S3ObjectStore", "create_object_store"]
