"""
sales_etl/storage package marker.
"""

from sales_etl.config import S3_OBJECT_STORAGE, ObjectStorageSettings
from sales_etl.storage.base import ByteSink, ByteSource, ObjectLocator, ObjectStorage
from sales_etl.storage.local import LocalObjectStorage, write_bytes_atomically
from sales_etl.storage.s3 import S3ObjectStorage


def build_object_storage(settings: ObjectStorageSettings) -> ObjectStorage:
    """
    Construct the object store selected by `settings.backend`.
    """

    if settings.backend == S3_OBJECT_STORAGE:
        return S3ObjectStorage(region=settings.s3_region, endpoint_url=settings.s3_endpoint_url)
    return LocalObjectStorage(settings.local_root)


__all__ = [
    "ByteSink",
    "ByteSource",
    "LocalObjectStorage",
    "ObjectLocator",
    "ObjectStorage",
    "S3ObjectStorage",
    "build_object_storage",
    "write_bytes_atomically",
]
