from __future__ import annotations

import io

import pytest
from botocore.exceptions import ClientError

from sales_etl.errors import ObjectStorageError
from sales_etl.storage import ObjectLocator, S3ObjectStorage


class _FakeS3Client:
    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.put_calls: list[dict[str, object]] = []

    def get_object(self, *, Bucket: str, Key: str) -> dict[str, object]:
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, **kwargs: object) -> dict[str, object]:
        self.put_calls.append({"Bucket": Bucket, "Key": Key, **kwargs})
        self.objects[(Bucket, Key)] = Body
        return {}


class _DeniedS3Client(_FakeS3Client):
    def put_object(self, **kwargs: object) -> dict[str, object]:
        raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")


def test_put_then_fetch_strips_leading_slash() -> None:
    client = _FakeS3Client()
    storage = S3ObjectStorage(client=client)

    storage.put(ObjectLocator("bucket", "/processed/out.csv"), b"data", content_type="text/csv")

    assert client.put_calls == [{"Bucket": "bucket", "Key": "processed/out.csv", "ContentType": "text/csv"}]
    assert storage.fetch(ObjectLocator("bucket", "processed/out.csv")) == b"data"


def test_missing_key_raises_object_storage_error() -> None:
    storage = S3ObjectStorage(client=_FakeS3Client())

    with pytest.raises(ObjectStorageError, match="not found"):
        storage.fetch(ObjectLocator("bucket", "absent.csv"))


def test_put_failure_raises_object_storage_error() -> None:
    storage = S3ObjectStorage(client=_DeniedS3Client())

    with pytest.raises(ObjectStorageError):
        storage.put(ObjectLocator("bucket", "out.csv"), b"data")
