"""对象访问门面：在命名空间解析与鉴权之后读取数据集桶中的对象。

写入只能走批次流程，直接新增或删除单个对象的接口明确返回“不支持”。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session

from app.packages.registry.core.exceptions import (
    NotFoundException,
    NotSupportedException,
    ObjectStoreException,
)
from app.packages.registry.core.logger import logger
from app.packages.registry.models.batch import Entry
from app.packages.registry.services.auth_manager import AuthManager
from app.packages.registry.services.batch_service import batch_service
from app.packages.registry.services.bucket_service import bucket_service
from app.packages.registry.services.namespace_service import namespace_service
from app.packages.registry.services.object_system import (
    ObjectInfo,
    ObjectNotFoundError,
    ObjectSystem,
    ObjectSystemError,
)
from app.packages.registry.utils.path_utils import is_staging_key, norm_object_key


@dataclass(frozen=True)
class ObjectResult:
    content_type: str
    name: str
    data: bytes


class ObjectsService:
    def list_objects(
        self,
        db: Session,
        auth: AuthManager,
        store: ObjectSystem,
        org_slug: Optional[str],
        ds_slug: Optional[str],
        path: Optional[str] = "",
    ) -> Iterator[ObjectInfo]:
        """列出数据集桶中以 ``path`` 为前缀的对象。

        解析、鉴权与建桶立即执行，返回的迭代器按需拉取对象信息；
        批次暂存区中的对象不会出现在结果中。
        """
        dataset = namespace_service.resolve_dataset(db, auth, org_slug, ds_slug)
        context = {"org": org_slug, "dataset": ds_slug}
        prefix = norm_object_key(path)
        try:
            bucket = bucket_service.ensure_bucket(store, dataset.organization_slug, dataset.slug)
            listing = store.list_objects(bucket, prefix)
        except ObjectSystemError as exc:
            logger.error("Failed to list objects under %r: %s", prefix, exc, extra=context)
            raise ObjectStoreException("对象存储读取失败", {**context, "path": prefix}) from exc
        return (info for info in listing if not is_staging_key(info.name))

    def get_object(
        self,
        db: Session,
        auth: AuthManager,
        store: ObjectSystem,
        org_slug: Optional[str],
        ds_slug: Optional[str],
        path: Optional[str],
    ) -> ObjectResult:
        dataset = namespace_service.resolve_dataset(db, auth, org_slug, ds_slug)
        key = norm_object_key(path)
        context = {"org": org_slug, "dataset": ds_slug, "path": key}
        if not key or is_staging_key(key):
            raise NotFoundException("对象不存在", context)
        try:
            bucket = bucket_service.ensure_bucket(store, dataset.organization_slug, dataset.slug)
            info = store.get_object_info(bucket, key)
            data = store.get_object(bucket, key)
        except ObjectNotFoundError as exc:
            raise NotFoundException("对象不存在", context) from exc
        except ObjectSystemError as exc:
            logger.error("Failed to read object %s: %s", key, exc, extra=context)
            raise ObjectStoreException("对象存储读取失败", context) from exc
        return ObjectResult(content_type=info.content_type, name=key.rsplit("/", 1)[-1], data=data)

    def delete_all(
        self,
        db: Session,
        auth: AuthManager,
        store: ObjectSystem,
        org_slug: Optional[str],
        ds_slug: Optional[str],
    ) -> bool:
        """删除数据集对应的整个桶；桶不存在时什么也不做。"""
        dataset = namespace_service.resolve_dataset(db, auth, org_slug, ds_slug, manage=True)
        context = {"org": org_slug, "dataset": ds_slug}
        try:
            return bucket_service.remove_bucket(store, dataset.organization_slug, dataset.slug)
        except ObjectSystemError as exc:
            logger.error("Failed to remove bucket: %s", exc, extra=context)
            raise ObjectStoreException("对象存储删除失败", context) from exc

    def add_object(
        self,
        db: Session,
        auth: AuthManager,
        org_slug: Optional[str],
        ds_slug: Optional[str],
        path: Optional[str],
    ) -> None:
        namespace_service.resolve_dataset(db, auth, org_slug, ds_slug)
        raise NotSupportedException(
            "不支持直接写入对象，请通过批次上传",
            {"org": org_slug, "dataset": ds_slug, "path": norm_object_key(path)},
        )

    def delete_object(
        self,
        db: Session,
        auth: AuthManager,
        org_slug: Optional[str],
        ds_slug: Optional[str],
        path: Optional[str],
    ) -> None:
        namespace_service.resolve_dataset(db, auth, org_slug, ds_slug)
        raise NotSupportedException(
            "不支持删除单个对象",
            {"org": org_slug, "dataset": ds_slug, "path": norm_object_key(path)},
        )

    def list_inventory(
        self,
        db: Session,
        auth: AuthManager,
        org_slug: Optional[str],
        ds_slug: Optional[str],
        path: Optional[str] = "",
    ) -> List[Entry]:
        dataset = namespace_service.resolve_dataset(db, auth, org_slug, ds_slug)
        return batch_service.list_inventory(db, dataset, path)


objects_service = ObjectsService()
