"""组织级访问策略：无副作用，相同输入得到相同结论。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.packages.registry.core.constants import DENY_REASON_NOT_OWNER, DENY_REASON_UNAUTHENTICATED
from app.packages.registry.models.organization import Organization
from app.packages.registry.services.auth_manager import AuthManager


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None


ALLOW = AccessDecision(True)


def check_access(auth: AuthManager, organization: Organization) -> AccessDecision:
    """按顺序判定：管理员放行；无身份拒绝；非公开且属于他人拒绝；其余放行。"""
    if auth.is_current_principal_admin():
        return ALLOW

    principal = auth.get_current_principal()
    if principal is None:
        return AccessDecision(False, DENY_REASON_UNAUTHENTICATED)

    owner_id = organization.owner_id
    if owner_id is not None and owner_id != principal.id and not organization.is_public:
        return AccessDecision(False, DENY_REASON_NOT_OWNER)

    return ALLOW


def check_manage(auth: AuthManager, organization: Organization) -> AccessDecision:
    """写操作的判定：公开组织对他人只读；无主组织任何已认证身份都可修改。"""
    if auth.is_current_principal_admin():
        return ALLOW

    principal = auth.get_current_principal()
    if principal is None:
        return AccessDecision(False, DENY_REASON_UNAUTHENTICATED)

    owner_id = organization.owner_id
    if owner_id is not None and owner_id != principal.id:
        return AccessDecision(False, DENY_REASON_NOT_OWNER)

    return ALLOW
