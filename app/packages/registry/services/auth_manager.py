"""认证协作者：向核心逻辑暴露“当前主体是谁、是否管理员”两个问题。

核心只依赖 ``AuthManager`` 接口；HTTP 层为每个请求构造 ``TokenAuthManager``，
脚本与测试可以直接使用 ``StaticAuthManager``。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from app.packages.registry.core.config import get_settings
from app.packages.registry.core.security import decode_and_verify_token


@dataclass(frozen=True)
class Principal:
    id: str
    username: str
    roles: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_admin(self) -> bool:
        return get_settings().admin_role.strip().lower() in self.roles


class AuthManager:
    """认证协作者接口。"""

    def is_current_principal_admin(self) -> bool:  # pragma: no cover - interface definition
        raise NotImplementedError

    def get_current_principal(self) -> Optional[Principal]:  # pragma: no cover
        raise NotImplementedError


class StaticAuthManager(AuthManager):
    """持有固定主体（可为空）的实现。"""

    def __init__(self, principal: Optional[Principal] = None) -> None:
        self._principal = principal

    def is_current_principal_admin(self) -> bool:
        return self._principal is not None and self._principal.is_admin

    def get_current_principal(self) -> Optional[Principal]:
        return self._principal


class TokenAuthManager(AuthManager):
    """从 Bearer JWT 解析主体，解析结果在单个请求内缓存。"""

    def __init__(self, token: Optional[str]) -> None:
        self._token = token
        self._resolved = False
        self._principal: Optional[Principal] = None

    def is_current_principal_admin(self) -> bool:
        principal = self.get_current_principal()
        return principal is not None and principal.is_admin

    def get_current_principal(self) -> Optional[Principal]:
        if not self._resolved:
            self._principal = self._decode()
            self._resolved = True
        return self._principal

    def _decode(self) -> Optional[Principal]:
        if not self._token:
            return None
        payload = decode_and_verify_token(self._token)
        if payload is None:
            return None
        return principal_from_claims(payload)


def principal_from_claims(payload: dict[str, Any]) -> Optional[Principal]:
    """``sub`` 为必需声明；``roles`` 可以是列表或逗号分隔字符串。"""
    subject = payload.get("sub")
    if subject is None or str(subject).strip() == "":
        return None
    raw_roles = payload.get("roles") or ()
    if isinstance(raw_roles, str):
        raw_roles = raw_roles.split(",")
    roles = tuple(str(role).strip().lower() for role in raw_roles if str(role).strip())
    username = str(payload.get("username") or subject)
    return Principal(id=str(subject), username=username, roles=roles)
