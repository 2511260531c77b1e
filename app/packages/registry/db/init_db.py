"""Database bootstrapping utilities."""

from __future__ import annotations

import logging

from app.packages.registry.db import session as db_session
from app.packages.registry.models import Base  # noqa: F401 - 导入即注册全部实体

logger = logging.getLogger(__name__)


def init_db() -> None:
    """Create all registry tables if they do not exist.

    注册中心没有需要预置的业务数据；组织与数据集全部由接口创建。
    Schema 迁移不在本服务职责内，生产环境由外部迁移工具维护。
    """
    Base.metadata.create_all(bind=db_session.engine)
    logger.info("Registry schema ensured on %s", db_session.engine.url.render_as_string(hide_password=True))
