"""数据集模型：组织下的第二级命名空间，对应一个物理桶。"""

import uuid
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.registry.models.base import Base, CreationDateMixin


class Dataset(CreationDateMixin, Base):
    """数据集实体。

    ``size`` 与 ``objects_count`` 是已提交批次中全部条目的聚合值，
    只能通过批次提交时的事务性增量修改。
    """

    __tablename__ = "datasets"
    __table_args__ = (
        UniqueConstraint("organization_slug", "slug", name="uq_datasets_organization_slug_slug"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    slug: Mapped[str] = mapped_column(String(128), index=True)
    organization_slug: Mapped[str] = mapped_column(
        String(128), ForeignKey("organizations.slug", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_ref: Mapped[str] = mapped_column(String(36), default=lambda: str(uuid.uuid4()))
    size: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0")
    objects_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="datasets")

    @property
    def tag(self) -> str:
        return f"{self.organization_slug}/{self.slug}"
