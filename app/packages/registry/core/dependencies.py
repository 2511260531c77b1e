"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.registry.core.config import get_settings
from app.packages.registry.core.constants import ACCESS_TOKEN_TYPE
from app.packages.registry.db import session as db_session
from app.packages.registry.services.auth_manager import AuthManager, TokenAuthManager
from app.packages.registry.services.object_system import ObjectSystem, build_object_system

security_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_auth_manager(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> AuthManager:
    """为当前请求构造认证协作者。

    缺少或无法解析的凭证不会在这里拒绝请求，是否放行由组织访问策略决定。
    """
    if credentials is None or credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        return TokenAuthManager(None)
    return TokenAuthManager(credentials.credentials)


@lru_cache
def get_object_system() -> ObjectSystem:
    """进程内共享的对象存储客户端。"""
    return build_object_system(get_settings())
