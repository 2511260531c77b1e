"""模型基类：统一声明式基类与通用的创建时间字段。

本模块集中提供：
- Base：SQLAlchemy 声明式基类，带统一命名约定；
- CreationDateMixin：`creation_date`，记录实体创建时间。

实体之间只通过显式的外键字段关联（组织 slug、数据集 id、批次 token），
数据库层声明 ``ON DELETE CASCADE``，业务层删除时仍按子到父的顺序显式执行。
"""

from datetime import datetime

from sqlalchemy import DateTime, MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata_obj = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """全局声明式基类，附带一致的命名约定，便于迁移与调试。"""

    metadata = metadata_obj


class CreationDateMixin:
    """创建时间，由数据库填充。"""

    creation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
