"""批次状态机：条目累积、提交/回滚的原子性与幂等性、暂存对象的转正。"""

import hashlib
import threading

import pytest

from app.packages.registry.core.enums import BatchStatus, EntryType
from app.packages.registry.core.exceptions import (
    BadRequestException,
    ConflictException,
    NotFoundException,
)
from app.packages.registry.crud.datasets import dataset_crud
from app.packages.registry.db import session as db_session
from app.packages.registry.models import Dataset, DownloadPackage
from app.packages.registry.services.batch_service import batch_service, plan_transition
from app.packages.registry.services.bucket_service import bucket_name_for
from app.packages.registry.services.object_system import ObjectSystemError


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _fill(db, store, dataset, token):
    """3 个文件条目 + 1 个目录条目，共 1,500,000 字节。"""
    for path, size in (("a/1.bin", 400_000), ("a/2.bin", 600_000), ("b/3.bin", 499_000)):
        batch_service.add_entry(db, store, dataset, token, path=path, hash="f" * 64, size=size, type=EntryType.FILE)
    batch_service.add_entry(db, store, dataset, token, path="a", hash="d" * 64, size=1_000, type=EntryType.DIRECTORY)


def test_plan_transition():
    assert plan_transition(BatchStatus.OPEN, BatchStatus.COMMITTED) is True
    assert plan_transition(BatchStatus.OPEN, BatchStatus.ROLLED_BACK) is True
    assert plan_transition(BatchStatus.COMMITTED, BatchStatus.COMMITTED) is False
    assert plan_transition(BatchStatus.ROLLED_BACK, BatchStatus.ROLLED_BACK) is False
    with pytest.raises(ConflictException):
        plan_transition(BatchStatus.COMMITTED, BatchStatus.ROLLED_BACK)
    with pytest.raises(ConflictException):
        plan_transition(BatchStatus.ROLLED_BACK, BatchStatus.COMMITTED)
    with pytest.raises(ValueError):
        plan_transition(BatchStatus.OPEN, BatchStatus.OPEN)


def test_begin(db_session_fixture, make_dataset):
    dataset = make_dataset()
    batch = batch_service.begin(db_session_fixture, dataset, "alice")
    assert batch.state is BatchStatus.OPEN
    assert len(batch.token) == 32
    assert batch.user_name == "alice"
    assert batch.start_time is not None
    assert batch.end_time is None


def test_commit_applies_aggregates_once(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    token = batch_service.begin(db, dataset, "alice").token
    _fill(db, store, dataset, token)

    batch = batch_service.commit(db, store, dataset, token)
    assert batch.state is BatchStatus.COMMITTED
    assert batch.end_time is not None
    db.refresh(dataset)
    assert (dataset.size, dataset.objects_count) == (1_500_000, 3)

    # 重放提交不再改变聚合值
    batch_service.commit(db, store, dataset, token)
    db.refresh(dataset)
    assert (dataset.size, dataset.objects_count) == (1_500_000, 3)


def test_rollback_leaves_aggregates_untouched(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    token = batch_service.begin(db, dataset, "alice").token
    _fill(db, store, dataset, token)

    batch = batch_service.rollback(db, store, dataset, token)
    assert batch.state is BatchStatus.ROLLED_BACK
    db.refresh(dataset)
    assert (dataset.size, dataset.objects_count) == (0, 0)
    # 条目保留用于审计，但不进入库存
    assert len(batch.entries) == 4
    assert batch_service.list_inventory(db, dataset) == []
    batch_service.rollback(db, store, dataset, token)


def test_terminal_batches_reject_other_transitions(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    committed = batch_service.begin(db, dataset, "alice").token
    rolled_back = batch_service.begin(db, dataset, "alice").token
    batch_service.commit(db, store, dataset, committed)
    batch_service.rollback(db, store, dataset, rolled_back)

    with pytest.raises(ConflictException) as exc_info:
        batch_service.rollback(db, store, dataset, committed)
    assert exc_info.value.status_code == 409
    assert exc_info.value.data["batch"] == committed
    with pytest.raises(ConflictException):
        batch_service.commit(db, store, dataset, rolled_back)
    for token in (committed, rolled_back):
        with pytest.raises(ConflictException):
            batch_service.add_entry(db, store, dataset, token, path="late.bin", hash="0" * 64, size=1)


def test_unknown_or_foreign_token(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    other = make_dataset()
    token = batch_service.begin(db, other, "alice").token
    with pytest.raises(NotFoundException):
        batch_service.commit(db, store, dataset, token)
    with pytest.raises(NotFoundException):
        batch_service.get_batch(db, dataset, "0" * 32)


@pytest.mark.parametrize(
    ("fields", "message"),
    [
        ({"path": "../etc/passwd", "hash": "a", "size": 1}, "条目路径不合法"),
        ({"path": "a//b", "hash": "a", "size": 1}, "条目路径不合法"),
        ({"path": "", "hash": "a", "size": 1}, "条目路径不合法"),
        ({"path": "_batches/x/a.bin", "hash": "a", "size": 1}, "条目路径不合法"),
        ({"path": "a.bin", "hash": "a", "size": -1}, "条目大小不合法"),
        ({"path": "a.bin", "hash": " ", "size": 1}, "缺少条目哈希"),
        ({"path": "a.bin", "hash": "a", "size": 1, "type": 9}, "条目类型不合法"),
    ],
)
def test_add_entry_validation(db_session_fixture, store, make_dataset, fields, message):
    dataset = make_dataset()
    token = batch_service.begin(db_session_fixture, dataset, "alice").token
    with pytest.raises(BadRequestException) as exc_info:
        batch_service.add_entry(db_session_fixture, store, dataset, token, **fields)
    assert exc_info.value.detail == message


def test_add_entry_normalizes_path_and_keeps_hash_as_given(db_session_fixture, store, make_dataset):
    dataset = make_dataset()
    token = batch_service.begin(db_session_fixture, dataset, "alice").token
    entry = batch_service.add_entry(
        db_session_fixture, store, dataset, token, path="/docs\\a.txt", hash=" q0Zb+A== ", size=3
    )
    assert entry.path == "docs/a.txt"
    assert entry.hash == "q0Zb+A=="
    assert entry.entry_type is EntryType.FILE


def test_payload_must_match_declaration(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    token = batch_service.begin(db, dataset, "alice").token
    data = b"payload"
    with pytest.raises(BadRequestException):
        batch_service.add_entry(db, store, dataset, token, path="x", hash=_sha(data), size=len(data) + 1, data=data)
    with pytest.raises(BadRequestException):
        batch_service.add_entry(db, store, dataset, token, path="x", hash="0" * 64, size=len(data), data=data)
    with pytest.raises(BadRequestException):
        batch_service.add_entry(
            db, store, dataset, token, path="x", hash=_sha(data), size=len(data), type=EntryType.DIRECTORY, data=data
        )


def test_payload_hash_comparison_ignores_hex_case(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    token = batch_service.begin(db, dataset, "alice").token
    data = b"payload"
    upper = _sha(data).upper()
    entry = batch_service.add_entry(db, store, dataset, token, path="x", hash=upper, size=len(data), data=data)
    assert entry.hash == upper


def test_staged_payload_is_promoted_on_commit(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    bucket = bucket_name_for(dataset.organization_slug, dataset.slug)
    token = batch_service.begin(db, dataset, "alice").token
    data = b"hello registry"
    batch_service.add_entry(db, store, dataset, token, path="docs/hello.txt", hash=_sha(data), size=len(data), data=data)

    assert [info.name for info in store.list_objects(bucket)] == [f"_batches/{token}/docs/hello.txt"]

    batch_service.commit(db, store, dataset, token)
    assert store.get_object(bucket, "docs/hello.txt") == data
    assert [info.name for info in store.list_objects(bucket)] == ["docs/hello.txt"]


def test_rollback_discards_staged_payload(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    bucket = bucket_name_for(dataset.organization_slug, dataset.slug)
    token = batch_service.begin(db, dataset, "alice").token
    data = b"discard me"
    batch_service.add_entry(db, store, dataset, token, path="tmp.txt", hash=_sha(data), size=len(data), data=data)

    batch_service.rollback(db, store, dataset, token)
    assert list(store.list_objects(bucket)) == []


def test_promotion_failure_is_resumed_by_next_commit(db_session_fixture, store, make_dataset, monkeypatch):
    db = db_session_fixture
    dataset = make_dataset()
    bucket = bucket_name_for(dataset.organization_slug, dataset.slug)
    token = batch_service.begin(db, dataset, "alice").token
    data = b"eventually"
    batch_service.add_entry(db, store, dataset, token, path="late.txt", hash=_sha(data), size=len(data), data=data)

    def broken_copy(*args, **kwargs):
        raise ObjectSystemError("store unavailable")

    monkeypatch.setattr(store, "copy_object", broken_copy)
    batch = batch_service.commit(db, store, dataset, token)
    assert batch.state is BatchStatus.COMMITTED
    assert [info.name for info in store.list_objects(bucket)] == [f"_batches/{token}/late.txt"]

    monkeypatch.undo()
    batch_service.commit(db, store, dataset, token)
    assert store.get_object(bucket, "late.txt") == data
    db.refresh(dataset)
    assert (dataset.size, dataset.objects_count) == (len(data), 1)


def test_failed_commit_leaves_batch_open(db_session_fixture, store, make_dataset, monkeypatch):
    db = db_session_fixture
    dataset = make_dataset()
    token = batch_service.begin(db, dataset, "alice").token
    _fill(db, store, dataset, token)

    def boom(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(dataset_crud, "apply_inventory_delta", boom)
    with pytest.raises(RuntimeError):
        batch_service.commit(db, store, dataset, token)
    assert batch_service.get_batch(db, dataset, token).state is BatchStatus.OPEN
    db.refresh(dataset)
    assert (dataset.size, dataset.objects_count) == (0, 0)

    monkeypatch.undo()
    batch_service.commit(db, store, dataset, token)
    db.refresh(dataset)
    assert (dataset.size, dataset.objects_count) == (1_500_000, 3)


def test_concurrent_commits_apply_once(db_session_fixture, store, make_dataset):
    dataset = make_dataset()
    token = batch_service.begin(db_session_fixture, dataset, "alice").token
    _fill(db_session_fixture, store, dataset, token)

    workers = 4
    barrier = threading.Barrier(workers)
    errors = []

    def run():
        with db_session.SessionLocal() as session:
            local = session.get(Dataset, dataset.id)
            barrier.wait()
            try:
                batch_service.commit(session, store, local, token)
            except Exception as exc:  # pragma: no cover - 失败时由断言报告
                errors.append(exc)

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    db_session_fixture.refresh(dataset)
    assert (dataset.size, dataset.objects_count) == (1_500_000, 3)


def test_inventory_contains_committed_entries_only(db_session_fixture, store, make_dataset):
    db = db_session_fixture
    dataset = make_dataset()
    committed = batch_service.begin(db, dataset, "alice").token
    pending = batch_service.begin(db, dataset, "alice").token
    _fill(db, store, dataset, committed)
    batch_service.add_entry(db, store, dataset, pending, path="a/pending.bin", hash="e" * 64, size=5)
    batch_service.commit(db, store, dataset, committed)

    paths = [entry.path for entry in batch_service.list_inventory(db, dataset)]
    assert paths == ["a", "a/1.bin", "a/2.bin", "b/3.bin"]
    assert [entry.path for entry in batch_service.list_inventory(db, dataset, "/a/")] == ["a/1.bin", "a/2.bin"]


def test_download_package_paths(db_session_fixture, make_dataset):
    dataset = make_dataset()
    package = DownloadPackage(dataset_id=dataset.id, user_name="alice", paths='["a/1.bin", "b"]')
    db_session_fixture.add(package)
    db_session_fixture.commit()
    assert package.path_list == ["a/1.bin", "b"]
