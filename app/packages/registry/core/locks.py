"""批次锁：使用 Redis 或内存后端实现按批次 token 串行化的互斥锁。"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import redis

from app.packages.registry.core.config import get_settings
from app.packages.registry.core.exceptions import ConflictException
from app.packages.registry.core.logger import logger


class LockBackend:
    """锁后端基类：``acquire`` 返回一个可释放的句柄，超时返回 ``None``。"""

    def acquire(self, name: str, timeout_seconds: int) -> Optional[object]:  # pragma: no cover - interface definition
        raise NotImplementedError

    def release(self, handle: object) -> None:  # pragma: no cover
        raise NotImplementedError


class RedisLockBackend(LockBackend):
    """基于 Redis 的分布式锁，多进程部署时同一批次只会有一个写入者。"""

    def __init__(self, url: str) -> None:
        self._client = redis.Redis.from_url(url)
        self._client.ping()

    def acquire(self, name: str, timeout_seconds: int) -> Optional[object]:
        lock = self._client.lock(
            self._build_key(name),
            timeout=max(timeout_seconds, 1) * 4,
            blocking_timeout=timeout_seconds,
        )
        if not lock.acquire(blocking=True):
            return None
        return lock

    def release(self, handle: object) -> None:
        try:
            handle.release()  # type: ignore[attr-defined]
        except redis.exceptions.LockError:
            # 锁已过期被回收：记录后继续，事务结果以数据库为准
            logger.warning("Batch lock expired before release")

    @staticmethod
    def _build_key(name: str) -> str:
        return f"lock:batch:{name}"


class InMemoryLockBackend(LockBackend):
    """进程内锁表，用于测试或缺少 Redis 时的回退实现。"""

    def __init__(self) -> None:
        self._locks: dict[str, list] = {}
        self._guard = threading.Lock()

    def acquire(self, name: str, timeout_seconds: int) -> Optional[object]:
        with self._guard:
            slot = self._locks.setdefault(name, [threading.Lock(), 0])
            slot[1] += 1
        if not slot[0].acquire(timeout=timeout_seconds):
            self._drop_waiter(name, slot)
            return None
        return (name, slot)

    def release(self, handle: object) -> None:
        name, slot = handle  # type: ignore[misc]
        slot[0].release()
        self._drop_waiter(name, slot)

    def _drop_waiter(self, name: str, slot: list) -> None:
        with self._guard:
            slot[1] -= 1
            if slot[1] == 0 and self._locks.get(name) is slot:
                del self._locks[name]


_backend: Optional[LockBackend] = None
_backend_guard = threading.Lock()


def _get_backend() -> LockBackend:
    global _backend
    if _backend is not None:
        return _backend

    with _backend_guard:
        if _backend is not None:
            return _backend
        settings = get_settings()
        mode = (settings.lock_backend or "auto").strip().lower()
        if mode == "memory":
            _backend = InMemoryLockBackend()
            return _backend
        try:
            backend = RedisLockBackend(settings.redis_url)
            logger.info("Batch lock store initialized with Redis at %s", settings.redis_url)
            _backend = backend
        except redis.exceptions.RedisError as exc:
            if mode == "redis":
                raise
            logger.warning("Redis unavailable (%s), falling back to in-process batch locks", exc)
            _backend = InMemoryLockBackend()
    return _backend


def configure_backend(backend: Optional[LockBackend]) -> None:
    """显式替换锁后端；传入 ``None`` 时下次使用会按配置重新探测。"""
    global _backend
    with _backend_guard:
        _backend = backend


@contextmanager
def batch_lock(token: str) -> Iterator[None]:
    """串行化同一批次上的写操作，等待超时时抛出冲突异常。"""
    timeout = get_settings().batch_lock_timeout_seconds
    backend = _get_backend()
    handle = backend.acquire(token, timeout)
    if handle is None:
        raise ConflictException("批次正在被其他请求修改，请稍后重试", {"batch": token})
    try:
        yield
    finally:
        backend.release(handle)
