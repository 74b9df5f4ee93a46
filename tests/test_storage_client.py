import io

import pytest
from botocore.exceptions import ClientError

from storage_client import LocalImageStorage, S3ImageStorage, StorageError, discard_stored, new_storage_ref


def test_storage_ref_keeps_lowercase_extension():
    ref = new_storage_ref("Holiday Photo.JPG")
    assert ref.endswith(".jpg")
    assert len(ref) == 32 + len(".jpg")


def test_storage_ref_drops_odd_extensions():
    assert "." not in new_storage_ref("no_extension")
    assert "." not in new_storage_ref("weird.j p g")


def test_local_storage_round_trip(tmp_path):
    storage = LocalImageStorage(tmp_path)

    ref = storage.save("cat.png", b"bytes")

    assert (tmp_path / ref).read_bytes() == b"bytes"
    assert storage.read(ref) == b"bytes"


def test_local_storage_rejects_path_traversal(tmp_path):
    storage = LocalImageStorage(tmp_path)

    with pytest.raises(StorageError):
        storage.read("../secret.txt")


def test_local_storage_missing_file(tmp_path):
    with pytest.raises(StorageError):
        LocalImageStorage(tmp_path).read("0" * 32 + ".png")


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body):
        self.objects[(Bucket, Key)] = Body

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}


def test_s3_storage_round_trip():
    storage = S3ImageStorage("uploads", client=FakeS3())

    ref = storage.save("dog.jpeg", b"jpeg-bytes")

    assert storage.read(ref) == b"jpeg-bytes"
    assert storage.health_snapshot()["bucket"] == "uploads"


def test_s3_storage_wraps_client_errors():
    with pytest.raises(StorageError):
        S3ImageStorage("uploads", client=FakeS3()).read("f" * 32)


def test_local_storage_delete(tmp_path):
    storage = LocalImageStorage(tmp_path)
    ref = storage.save("cat.png", b"bytes")

    storage.delete(ref)
    storage.delete(ref)

    assert not (tmp_path / ref).exists()


def test_s3_storage_delete():
    s3 = FakeS3()
    storage = S3ImageStorage("uploads", client=s3)
    ref = storage.save("dog.jpeg", b"jpeg-bytes")

    storage.delete(ref)

    assert s3.objects == {}


def test_discard_stored_keeps_going_after_a_failure(tmp_path):
    storage = LocalImageStorage(tmp_path)
    kept = storage.save("a.png", b"a")
    removed = storage.save("b.png", b"b")

    discard_stored(storage, ["../escape", removed])

    assert storage.read(kept) == b"a"
    assert not (tmp_path / removed).exists()
