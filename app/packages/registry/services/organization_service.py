"""组织与数据集管理：创建、删除以及对外输出的序列化。"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.registry.core.constants import SLUG_MAX_LENGTH
from app.packages.registry.core.exceptions import (
    BadRequestException,
    ConflictException,
    ObjectStoreException,
    UnauthenticatedException,
)
from app.packages.registry.core.logger import logger
from app.packages.registry.core.security import get_password_hash
from app.packages.registry.core.timezone import format_datetime
from app.packages.registry.crud.datasets import dataset_crud
from app.packages.registry.crud.organizations import organization_crud
from app.packages.registry.models.dataset import Dataset
from app.packages.registry.models.organization import Organization
from app.packages.registry.services.auth_manager import AuthManager, Principal
from app.packages.registry.services.bucket_service import bucket_service
from app.packages.registry.services.namespace_service import namespace_service
from app.packages.registry.services.object_system import ObjectSystem, ObjectSystemError
from app.packages.registry.utils.slugs import is_slug_valid, make_slug


def _pick_slug(name: str, slug: Optional[str], label: str) -> str:
    """未显式给出 slug 时由名称生成；两种来源都必须通过同一套校验。"""
    if not name or not name.strip():
        raise BadRequestException(f"缺少{label}名称")
    candidate = slug.strip() if slug else make_slug(name.strip())
    if not is_slug_valid(candidate) or len(candidate) > SLUG_MAX_LENGTH:
        raise BadRequestException(f"{label}标识不合法", {"slug": candidate})
    return candidate


def _require_principal(auth: AuthManager) -> Principal:
    principal = auth.get_current_principal()
    if principal is None:
        raise UnauthenticatedException("无效的用户身份")
    return principal


class OrganizationService:
    # ----------------------------
    # 创建
    # ----------------------------
    def create_organization(
        self,
        db: Session,
        auth: AuthManager,
        *,
        name: str,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        is_public: bool = False,
    ) -> Organization:
        principal = _require_principal(auth)
        org_slug = _pick_slug(name, slug, "组织")
        if organization_crud.get_by_slug(db, org_slug) is not None:
            raise ConflictException("组织标识已存在", {"org": org_slug})
        try:
            organization = organization_crud.create(
                db,
                {
                    "slug": org_slug,
                    "name": name.strip(),
                    "description": description,
                    "is_public": bool(is_public),
                    "owner_id": principal.id,
                },
            )
        except IntegrityError as exc:
            db.rollback()
            raise ConflictException("组织标识已存在", {"org": org_slug}) from exc
        logger.info("Organization %s created by %s", org_slug, principal.username, extra={"org": org_slug})
        return organization

    def create_dataset(
        self,
        db: Session,
        auth: AuthManager,
        org_slug: Optional[str],
        *,
        name: str,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        password: Optional[str] = None,
    ) -> Dataset:
        organization = namespace_service.resolve_organization(db, auth, org_slug, manage=True)
        ds_slug = _pick_slug(name, slug, "数据集")
        context = {"org": organization.slug, "dataset": ds_slug}
        if any(item.slug == ds_slug for item in organization.datasets):
            raise ConflictException("数据集标识已存在", context)
        try:
            dataset = dataset_crud.create(
                db,
                {
                    "slug": ds_slug,
                    "organization_slug": organization.slug,
                    "name": name.strip(),
                    "description": description,
                    "internal_ref": str(uuid.uuid4()),
                    "size": 0,
                    "objects_count": 0,
                    "password_hash": get_password_hash(password) if password else None,
                },
            )
        except IntegrityError as exc:
            db.rollback()
            raise ConflictException("数据集标识已存在", context) from exc
        db.refresh(organization)
        logger.info("Dataset %s created", dataset.tag, extra=context)
        return dataset

    # ----------------------------
    # 删除
    # ----------------------------
    def delete_dataset(
        self,
        db: Session,
        auth: AuthManager,
        store: ObjectSystem,
        org_slug: Optional[str],
        ds_slug: Optional[str],
    ) -> None:
        dataset = namespace_service.resolve_dataset(db, auth, org_slug, ds_slug, manage=True)
        context = {"org": dataset.organization_slug, "dataset": dataset.slug}
        try:
            dataset_crud.delete_cascade(db, [dataset.id])
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to delete dataset %s", dataset.tag, extra=context)
            raise
        self._remove_buckets(store, [(context["org"], context["dataset"])])
        logger.info("Dataset %s/%s deleted", context["org"], context["dataset"], extra=context)

    def delete_organization(
        self,
        db: Session,
        auth: AuthManager,
        store: ObjectSystem,
        org_slug: Optional[str],
    ) -> None:
        organization = namespace_service.resolve_organization(db, auth, org_slug, manage=True)
        slug = organization.slug
        buckets = [(slug, item.slug) for item in organization.datasets]
        try:
            organization_crud.delete_cascade(db, slug)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to delete organization %s", slug, extra={"org": slug})
            raise
        self._remove_buckets(store, buckets)
        logger.info("Organization %s deleted with %s datasets", slug, len(buckets), extra={"org": slug})

    def _remove_buckets(self, store: ObjectSystem, pairs: list[tuple[str, str]]) -> None:
        # 数据库记录已删除，桶清理失败时上报，由调用方决定是否重试
        failed = []
        for org_slug, ds_slug in pairs:
            try:
                bucket_service.remove_bucket(store, org_slug, ds_slug)
            except ObjectSystemError:
                logger.error(
                    "Failed to remove bucket for %s/%s",
                    org_slug,
                    ds_slug,
                    exc_info=True,
                    extra={"org": org_slug, "dataset": ds_slug},
                )
                failed.append(f"{org_slug}/{ds_slug}")
        if failed:
            raise ObjectStoreException("记录已删除，但对象存储清理失败", {"datasets": failed})

    # ----------------------------
    # 序列化
    # ----------------------------
    @staticmethod
    def serialize_dataset(dataset: Dataset) -> Dict[str, Any]:
        return {
            "slug": dataset.slug,
            "tag": dataset.tag,
            "name": dataset.name,
            "description": dataset.description,
            "internal_ref": dataset.internal_ref,
            "size": int(dataset.size or 0),
            "objects_count": int(dataset.objects_count or 0),
            "protected": dataset.password_hash is not None,
            "creation_date": format_datetime(dataset.creation_date),
        }

    def serialize_organization(self, organization: Organization, *, with_datasets: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "slug": organization.slug,
            "name": organization.name,
            "description": organization.description,
            "is_public": bool(organization.is_public),
            "owner_id": organization.owner_id,
            "creation_date": format_datetime(organization.creation_date),
        }
        if with_datasets:
            data["datasets"] = [self.serialize_dataset(item) for item in organization.datasets]
        return data


organization_service = OrganizationService()
