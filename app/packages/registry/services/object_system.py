"""对象存储抽象与实现：统一封装本地目录与 S3 兼容存储的桶/对象操作。"""

from __future__ import annotations

import mimetypes
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.packages.registry.core.config import Settings
from app.packages.registry.core.logger import logger


_UPLOAD_TMP_PREFIX = ".upload-"


def _norm_mime(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    return mime or "application/octet-stream"


# ------------------------------------------
# 公共数据结构与异常
# ------------------------------------------


@dataclass
class ObjectInfo:
    bucket: str
    name: str
    size: int
    content_type: str
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


class ObjectSystemError(Exception):
    """对象存储调用失败；核心不重试，由调用方决定如何处理。"""


class BucketAlreadyExistsError(ObjectSystemError):
    pass


class BucketNotFoundError(ObjectSystemError):
    pass


class ObjectNotFoundError(ObjectSystemError):
    pass


class ObjectSystem:
    """对象存储接口：每个调用各自原子，调用之间没有事务保证。"""

    def bucket_exists(self, name: str) -> bool:
        raise NotImplementedError

    def make_bucket(self, name: str, region: Optional[str] = None) -> None:
        raise NotImplementedError

    def remove_bucket(self, name: str) -> None:
        """删除桶及其全部对象。"""
        raise NotImplementedError

    def get_object_info(self, bucket: str, path: str) -> ObjectInfo:
        raise NotImplementedError

    def get_object(self, bucket: str, path: str) -> bytes:
        raise NotImplementedError

    def list_objects(self, bucket: str, prefix: str = "") -> Iterator[ObjectInfo]:
        """按 key 前缀递归列举对象，返回惰性迭代器。"""
        raise NotImplementedError

    def put_object(self, bucket: str, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        raise NotImplementedError

    def copy_object(self, bucket: str, source: str, destination: str) -> None:
        raise NotImplementedError

    def remove_object(self, bucket: str, path: str) -> None:
        """删除单个对象，不存在时静默成功。"""
        raise NotImplementedError


# ------------------------------------------
# 本地文件系统实现：根目录下每个子目录是一个桶
# ------------------------------------------


class LocalObjectSystem(ObjectSystem):
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _bucket_dir(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ObjectSystemError(f"非法桶名: {name!r}")
        return self.root / name

    # 统一的安全路径拼接，防止路径遍历
    def _resolve(self, bucket: str, key: str) -> Path:
        base = self._bucket_dir(bucket)
        if not base.is_dir():
            raise BucketNotFoundError(bucket)
        candidate = (base / key.lstrip("/")).resolve()
        try:
            candidate.relative_to(base.resolve())
        except ValueError as exc:
            raise ObjectSystemError(f"非法路径: {key!r}") from exc
        return candidate

    def _info(self, bucket: str, key: str, path: Path) -> ObjectInfo:
        stat = path.stat()
        return ObjectInfo(
            bucket=bucket,
            name=key,
            size=int(stat.st_size),
            content_type=_norm_mime(key),
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def bucket_exists(self, name: str) -> bool:
        return self._bucket_dir(name).is_dir()

    def make_bucket(self, name: str, region: Optional[str] = None) -> None:
        try:
            self._bucket_dir(name).mkdir(exist_ok=False)
        except FileExistsError as exc:
            raise BucketAlreadyExistsError(name) from exc

    def remove_bucket(self, name: str) -> None:
        target = self._bucket_dir(name)
        if not target.is_dir():
            raise BucketNotFoundError(name)
        shutil.rmtree(target)

    def get_object_info(self, bucket: str, path: str) -> ObjectInfo:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise ObjectNotFoundError(f"{bucket}/{path}")
        return self._info(bucket, path.lstrip("/"), target)

    def get_object(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise ObjectNotFoundError(f"{bucket}/{path}")
        return target.read_bytes()

    def list_objects(self, bucket: str, prefix: str = "") -> Iterator[ObjectInfo]:
        base = self._bucket_dir(bucket)
        if not base.is_dir():
            raise BucketNotFoundError(bucket)
        return self._walk(bucket, base, prefix.lstrip("/"))

    def _walk(self, bucket: str, base: Path, prefix: str) -> Iterator[ObjectInfo]:
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames.sort()
            for filename in sorted(filenames):
                if filename.startswith(_UPLOAD_TMP_PREFIX):
                    continue
                path = Path(dirpath) / filename
                key = path.relative_to(base).as_posix()
                if not key.startswith(prefix):
                    continue
                try:
                    yield self._info(bucket, key, path)
                except FileNotFoundError:
                    # 列举期间被删除的对象直接跳过
                    continue

    def put_object(self, bucket: str, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        target = self._resolve(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=_UPLOAD_TMP_PREFIX)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, target)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise ObjectSystemError(f"写入对象失败: {bucket}/{path}") from exc

    def copy_object(self, bucket: str, source: str, destination: str) -> None:
        src = self._resolve(bucket, source)
        if not src.is_file():
            raise ObjectNotFoundError(f"{bucket}/{source}")
        dst = self._resolve(bucket, destination)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dst)

    def remove_object(self, bucket: str, path: str) -> None:
        target = self._resolve(bucket, path)
        target.unlink(missing_ok=True)
        # 清理因此变空的父目录，桶根目录保留
        base = self._bucket_dir(bucket).resolve()
        parent = target.parent
        while parent != base and parent.is_dir() and not any(parent.iterdir()):
            try:
                parent.rmdir()
            except OSError:
                # 并发写入者刚放入了新对象
                break
            parent = parent.parent


# ------------------------------------------
# S3 实现（boto3），兼容 MinIO 等自定义 endpoint
# ------------------------------------------

_MISSING_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}
_BUCKET_TAKEN_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3ObjectSystem(ObjectSystem):
    def __init__(
        self,
        *,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
    ):
        self.region = region
        self._client = boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def bucket_exists(self, name: str) -> bool:
        try:
            self._client.head_bucket(Bucket=name)
            return True
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return False
            raise ObjectSystemError(f"查询桶失败: {name}") from exc
        except BotoCoreError as exc:
            raise ObjectSystemError(f"查询桶失败: {name}") from exc

    def make_bucket(self, name: str, region: Optional[str] = None) -> None:
        params: dict = {"Bucket": name}
        if region and region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            self._client.create_bucket(**params)
        except ClientError as exc:
            if _error_code(exc) in _BUCKET_TAKEN_CODES:
                raise BucketAlreadyExistsError(name) from exc
            raise ObjectSystemError(f"创建桶失败: {name}") from exc
        except BotoCoreError as exc:
            raise ObjectSystemError(f"创建桶失败: {name}") from exc

    def remove_bucket(self, name: str) -> None:
        try:
            keys = [{"Key": info.name} for info in self.list_objects(name)]
            # 批量删除（分批防止一次过多）
            for i in range(0, len(keys), 1000):
                self._client.delete_objects(Bucket=name, Delete={"Objects": keys[i : i + 1000]})
            self._client.delete_bucket(Bucket=name)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise BucketNotFoundError(name) from exc
            raise ObjectSystemError(f"删除桶失败: {name}") from exc
        except BotoCoreError as exc:
            raise ObjectSystemError(f"删除桶失败: {name}") from exc

    def get_object_info(self, bucket: str, path: str) -> ObjectInfo:
        key = path.lstrip("/")
        try:
            head = self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise ObjectNotFoundError(f"{bucket}/{key}") from exc
            raise ObjectSystemError(f"读取对象信息失败: {bucket}/{key}") from exc
        return ObjectInfo(
            bucket=bucket,
            name=key,
            size=int(head.get("ContentLength") or 0),
            content_type=head.get("ContentType") or _norm_mime(key),
            last_modified=head.get("LastModified"),
            etag=(head.get("ETag") or "").strip('"') or None,
        )

    def get_object(self, bucket: str, path: str) -> bytes:
        key = path.lstrip("/")
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise ObjectNotFoundError(f"{bucket}/{key}") from exc
            raise ObjectSystemError(f"读取对象失败: {bucket}/{key}") from exc

    def list_objects(self, bucket: str, prefix: str = "") -> Iterator[ObjectInfo]:
        paginator = self._client.get_paginator("list_objects_v2")
        pages = paginator.paginate(Bucket=bucket, Prefix=prefix.lstrip("/"))
        return self._iter_pages(bucket, pages)

    def _iter_pages(self, bucket: str, pages) -> Iterator[ObjectInfo]:
        try:
            for page in pages:
                for content in page.get("Contents", []):
                    key = content.get("Key")
                    if not key or key.endswith("/"):
                        continue
                    yield ObjectInfo(
                        bucket=bucket,
                        name=key,
                        size=int(content.get("Size") or 0),
                        content_type=_norm_mime(key),
                        last_modified=content.get("LastModified"),
                        etag=(content.get("ETag") or "").strip('"') or None,
                    )
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise BucketNotFoundError(bucket) from exc
            raise ObjectSystemError(f"列举对象失败: {bucket}") from exc

    def put_object(self, bucket: str, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        key = path.lstrip("/")
        try:
            self._client.put_object(
                Bucket=bucket, Key=key, Body=data, ContentType=content_type or _norm_mime(key)
            )
        except (ClientError, BotoCoreError) as exc:
            raise ObjectSystemError(f"写入对象失败: {bucket}/{key}") from exc

    def copy_object(self, bucket: str, source: str, destination: str) -> None:
        src_key = source.lstrip("/")
        try:
            self._client.copy_object(
                Bucket=bucket,
                Key=destination.lstrip("/"),
                CopySource={"Bucket": bucket, "Key": src_key},
            )
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise ObjectNotFoundError(f"{bucket}/{src_key}") from exc
            raise ObjectSystemError(f"复制对象失败: {bucket}/{src_key}") from exc

    def remove_object(self, bucket: str, path: str) -> None:
        key = path.lstrip("/")
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise ObjectSystemError(f"删除对象失败: {bucket}/{key}") from exc


def build_object_system(settings: Settings) -> ObjectSystem:
    t = (settings.storage_provider_type or "").upper()
    if t == "LOCAL":
        logger.info("Using local object store at %s", settings.storage_local_directory)
        return LocalObjectSystem(settings.storage_local_directory)
    if t == "S3":
        options = settings.storage_provider_settings
        return S3ObjectSystem(
            region=options.get("region"),
            endpoint_url=options.get("endpoint_url"),
            access_key_id=options.get("access_key_id"),
            secret_access_key=options.get("secret_access_key"),
        )
    raise ValueError(f"不支持的存储类型: {settings.storage_provider_type}")
