"""命名空间解析：组织/数据集标识的校验、加载与鉴权。

所有组织范围的入口都先经过这里。数据集的存在性只会在组织鉴权通过之后
才被检查，未授权的调用方无法借此探测某个数据集是否存在。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.packages.registry.core.constants import DENY_REASON_UNAUTHENTICATED
from app.packages.registry.core.exceptions import (
    BadRequestException,
    NotFoundException,
    UnauthenticatedException,
    UnauthorizedException,
)
from app.packages.registry.core.logger import logger
from app.packages.registry.crud.organizations import organization_crud
from app.packages.registry.models.dataset import Dataset
from app.packages.registry.models.organization import Organization
from app.packages.registry.services.access_policy import AccessDecision, check_access, check_manage
from app.packages.registry.services.auth_manager import AuthManager
from app.packages.registry.utils.slugs import is_slug_valid, split_tag


def _raise_denied(decision: AccessDecision, context: dict) -> None:
    logger.info(
        "Access to organization %s denied (%s)",
        context.get("org"),
        decision.reason,
        extra={"org": context.get("org")},
    )
    if decision.reason == DENY_REASON_UNAUTHENTICATED:
        raise UnauthenticatedException("无效的用户身份", {**context, "reason": decision.reason})
    raise UnauthorizedException("该组织不属于当前用户", {**context, "reason": decision.reason})


class NamespaceService:
    def resolve_organization(
        self,
        db: Session,
        auth: AuthManager,
        org_slug: Optional[str],
        *,
        allow_missing: bool = False,
        manage: bool = False,
    ) -> Optional[Organization]:
        """加载组织及其数据集集合并执行访问策略。

        ``manage`` 为真时额外要求写权限：公开组织对所有者与管理员以外的身份只读。
        """
        context = {"org": org_slug}
        if not org_slug or not org_slug.strip():
            raise BadRequestException("缺少组织标识", context)
        if not is_slug_valid(org_slug):
            raise BadRequestException("组织标识不合法", context)

        organization = organization_crud.get_with_datasets(db, org_slug)
        if organization is None:
            if allow_missing:
                return None
            raise NotFoundException("组织不存在", context)

        decision = check_access(auth, organization)
        if decision.allowed and manage:
            decision = check_manage(auth, organization)
        if not decision.allowed:
            _raise_denied(decision, context)

        return organization

    def resolve_dataset(
        self,
        db: Session,
        auth: AuthManager,
        org_slug: Optional[str],
        ds_slug: Optional[str],
        *,
        allow_missing: bool = False,
        manage: bool = False,
    ) -> Optional[Dataset]:
        """先校验数据集标识，再解析并鉴权组织，最后在组织的数据集集合中查找。"""
        context = {"org": org_slug, "dataset": ds_slug}
        if not ds_slug or not ds_slug.strip():
            raise BadRequestException("缺少数据集标识", context)
        if not is_slug_valid(ds_slug):
            raise BadRequestException("数据集标识不合法", context)

        organization = self.resolve_organization(db, auth, org_slug, manage=manage)

        dataset = next((item for item in organization.datasets if item.slug == ds_slug), None)
        if dataset is None:
            if allow_missing:
                return None
            raise NotFoundException("数据集不存在", context)
        return dataset

    def resolve_tag(
        self,
        db: Session,
        auth: AuthManager,
        tag: Optional[str],
        *,
        allow_missing: bool = False,
    ) -> Optional[Dataset]:
        """解析 ``org/dataset`` 形式的引用；两段分别走完整的校验流程。"""
        org_slug, ds_slug = split_tag(tag or "")
        return self.resolve_dataset(db, auth, org_slug, ds_slug, allow_missing=allow_missing)


namespace_service = NamespaceService()
