import pytest

from receipt_tracker.storage.blob_storage import (
    LocalBlobStorage,
    file_extension,
    is_temp_path,
    make_temp_path,
    permanent_path,
    split_path,
)
from receipt_tracker.utils.helpers.exceptions import (
    StorageConflictError,
    StorageNotFoundError,
    StoragePermissionError,
)


@pytest.fixture
def bucket(tmp_path):
    return LocalBlobStorage(tmp_path / "bucket")


def test_temp_path_shape():
    path = make_temp_path("user-1", "JPG")
    folder, name = split_path(path)

    assert folder == "user-1"
    assert name.startswith("temp_") and name.endswith(".jpg")
    prefix, random_part, millis = name[: -len(".jpg")].split("_")
    assert len(random_part) == 8
    assert millis.isdigit()


def test_email_temp_prefix():
    assert split_path(make_temp_path("u", "pdf", prefix="temp_email"))[1].startswith("temp_email_")


@pytest.mark.parametrize(
    "path, expected",
    [
        (make_temp_path("u", "jpg"), True),
        (make_temp_path("u", "pdf", prefix="temp_email"), True),
        ("u/r-1.jpg", False),
        ("v/temp_abc_1.jpg", False),
        ("u/nested/temp_abc_1.jpg", False),
        ("u/temporary.jpg", False),
    ],
)
def test_is_temp_path(path, expected):
    assert is_temp_path(path, "u") is expected


def test_permanent_path_keeps_original_extension():
    assert permanent_path("u", "r-1", "u/temp_abc_1.PDF") == "u/r-1.pdf"
    assert file_extension("u/noext") == "jpg"


def test_upload_never_overwrites(bucket):
    bucket.upload("u/a.jpg", b"one", "image/jpeg")

    with pytest.raises(StorageConflictError):
        bucket.upload("u/a.jpg", b"two", "image/jpeg")
    assert bucket.download("u/a.jpg") == b"one"


def test_list_filters_by_substring(bucket):
    bucket.upload("u/temp_a_1.jpg", b"1", "image/jpeg")
    bucket.upload("u/temp_a_1.jpg.bak", b"2", "image/jpeg")
    bucket.upload("u/other.jpg", b"3", "image/jpeg")

    names = [entry.name for entry in bucket.list("u", "temp_a_1.jpg")]

    assert names == ["temp_a_1.jpg", "temp_a_1.jpg.bak"]
    assert bucket.exists("u/temp_a_1.jpg")
    assert not bucket.exists("u/temp_a_1")


def test_list_missing_folder(bucket):
    with pytest.raises(StorageNotFoundError):
        bucket.list("nobody")
    assert bucket.exists("nobody/x.jpg") is False


def test_move(bucket):
    bucket.upload("u/temp.jpg", b"img", "image/jpeg")

    bucket.move("u/temp.jpg", "u/r-1.jpg")

    assert bucket.download("u/r-1.jpg") == b"img"
    assert not bucket.exists("u/temp.jpg")


def test_move_errors(bucket):
    with pytest.raises(StorageNotFoundError):
        bucket.move("u/missing.jpg", "u/r.jpg")

    bucket.upload("u/a.jpg", b"a", "image/jpeg")
    bucket.upload("u/b.jpg", b"b", "image/jpeg")
    with pytest.raises(StorageConflictError):
        bucket.move("u/a.jpg", "u/b.jpg")


def test_remove_missing(bucket):
    with pytest.raises(StorageNotFoundError):
        bucket.remove("u/missing.jpg")


@pytest.mark.parametrize("path", ["", "/etc/passwd", "u/../../escape.jpg"])
def test_paths_outside_bucket_are_refused(bucket, path):
    with pytest.raises(StoragePermissionError):
        bucket.upload(path, b"x", "image/jpeg")


def test_content_type_from_extension(bucket):
    assert bucket.content_type("u/r.pdf") == "application/pdf"
    assert bucket.content_type("u/r.jpg") == "image/jpeg"
