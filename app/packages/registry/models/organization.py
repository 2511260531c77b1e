"""组织模型：命名空间的第一级，以 slug 作为主键。"""

from typing import List, Optional

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import expression

from app.packages.registry.models.base import Base, CreationDateMixin


class Organization(CreationDateMixin, Base):
    """组织实体。

    - ``slug`` 一经分配不可修改，且必须满足标识符规则；
    - ``owner_id`` 为空表示无主组织，任何已认证用户均可访问；
    - ``is_public`` 为真时非所有者也可访问。
    """

    __tablename__ = "organizations"

    slug: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, server_default=expression.false())
    owner_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    datasets: Mapped[List["Dataset"]] = relationship(
        "Dataset",
        back_populates="organization",
        order_by="Dataset.id",
        passive_deletes=True,
    )
