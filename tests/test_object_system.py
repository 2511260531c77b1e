"""对象存储实现：本地目录后端与 S3 后端的错误映射。"""

import types

import pytest
from botocore.stub import Stubber

from app.packages.registry.core.config import Settings
from app.packages.registry.services.object_system import (
    BucketAlreadyExistsError,
    BucketNotFoundError,
    LocalObjectSystem,
    ObjectNotFoundError,
    ObjectSystemError,
    S3ObjectSystem,
    build_object_system,
)


@pytest.fixture()
def bucket(store) -> str:
    store.make_bucket("acme-raw")
    return "acme-raw"


def test_local_bucket_lifecycle(store):
    assert not store.bucket_exists("acme-raw")
    store.make_bucket("acme-raw")
    assert store.bucket_exists("acme-raw")
    with pytest.raises(BucketAlreadyExistsError):
        store.make_bucket("acme-raw")
    store.remove_bucket("acme-raw")
    with pytest.raises(BucketNotFoundError):
        store.remove_bucket("acme-raw")


def test_local_put_get_and_info(store, bucket):
    store.put_object(bucket, "/docs/readme.txt", b"hello")
    assert store.get_object(bucket, "docs/readme.txt") == b"hello"
    info = store.get_object_info(bucket, "docs/readme.txt")
    assert info.name == "docs/readme.txt"
    assert info.size == 5
    assert info.content_type == "text/plain"
    with pytest.raises(ObjectNotFoundError):
        store.get_object(bucket, "docs/missing.txt")


def test_local_listing_is_lazy_sorted_and_prefixed(store, bucket):
    for key in ("b/2.bin", "a/1.bin", "b/1.bin", "c.bin"):
        store.put_object(bucket, key, b"0")
    listing = store.list_objects(bucket, "b/")
    assert isinstance(listing, types.GeneratorType)
    assert [info.name for info in listing] == ["b/1.bin", "b/2.bin"]
    assert [info.name for info in store.list_objects(bucket)] == ["c.bin", "a/1.bin", "b/1.bin", "b/2.bin"]


def test_local_listing_requires_bucket(store):
    with pytest.raises(BucketNotFoundError):
        store.list_objects("nope")


def test_local_rejects_path_traversal(store, bucket):
    with pytest.raises(ObjectSystemError):
        store.put_object(bucket, "../escape.txt", b"x")


def test_local_copy_and_remove_prunes_directories(store, bucket):
    store.put_object(bucket, "_batches/t/deep/file.txt", b"data")
    store.copy_object(bucket, "_batches/t/deep/file.txt", "deep/file.txt")
    store.remove_object(bucket, "_batches/t/deep/file.txt")
    assert store.get_object(bucket, "deep/file.txt") == b"data"
    assert [info.name for info in store.list_objects(bucket)] == ["deep/file.txt"]
    assert not (store.root / bucket / "_batches").exists()


def test_build_object_system(tmp_path):
    local = build_object_system(Settings(STORAGE_PROVIDER_TYPE="local", STORAGE_LOCAL_ROOT=str(tmp_path)))
    assert isinstance(local, LocalObjectSystem)
    with pytest.raises(ValueError):
        build_object_system(Settings(STORAGE_PROVIDER_TYPE="FTP"))


@pytest.fixture()
def s3():
    system = S3ObjectSystem(region="eu-west-1", access_key_id="test", secret_access_key="test")
    with Stubber(system._client) as stubber:
        yield system, stubber
        stubber.assert_no_pending_responses()


def test_s3_make_bucket_sends_location_constraint(s3):
    system, stubber = s3
    stubber.add_response(
        "create_bucket",
        {},
        {"Bucket": "acme-raw", "CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"}},
    )
    system.make_bucket("acme-raw", "eu-west-1")


def test_s3_bucket_already_owned_maps_to_exists(s3):
    system, stubber = s3
    stubber.add_client_error("create_bucket", service_error_code="BucketAlreadyOwnedByYou", http_status_code=409)
    with pytest.raises(BucketAlreadyExistsError):
        system.make_bucket("acme-raw")


def test_s3_missing_bucket_and_object(s3):
    system, stubber = s3
    stubber.add_client_error("head_bucket", service_error_code="404", http_status_code=404)
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
    assert system.bucket_exists("acme-raw") is False
    with pytest.raises(ObjectNotFoundError):
        system.get_object_info("acme-raw", "missing.txt")


def test_s3_other_errors_surface_as_object_system_errors(s3):
    system, stubber = s3
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
    with pytest.raises(ObjectSystemError):
        system.put_object("acme-raw", "a.txt", b"x")
