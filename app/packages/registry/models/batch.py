"""批次与条目模型：一次上传事务及其累积的内容条目。"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.registry.core.enums import BatchStatus, EntryType
from app.packages.registry.models.base import Base


class Batch(Base):
    """批次实体，``status`` 以小整数存储 ``BatchStatus``。

    终态（COMMITTED / ROLLED_BACK）写入后不再变化，``end_time`` 随之设置。
    """

    __tablename__ = "batches"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    dataset_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("datasets.id", ondelete="CASCADE"), index=True
    )
    user_name: Mapped[str] = mapped_column(String(255))
    status: Mapped[int] = mapped_column(Integer, default=int(BatchStatus.OPEN))
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    entries: Mapped[List["Entry"]] = relationship(
        "Entry", back_populates="batch", order_by="Entry.id", passive_deletes=True
    )

    @property
    def state(self) -> BatchStatus:
        return BatchStatus(self.status)


class Entry(Base):
    """批次条目：``path`` 为调用方期望的最终位置，``hash`` 为完整性依据。"""

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    batch_token: Mapped[str] = mapped_column(
        String(255), ForeignKey("batches.token", ondelete="CASCADE"), index=True
    )
    path: Mapped[str] = mapped_column(Text)
    hash: Mapped[str] = mapped_column(String(128))
    size: Mapped[int] = mapped_column(BigInteger, default=0)
    type: Mapped[int] = mapped_column(Integer, default=int(EntryType.FILE))
    added_on: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    batch: Mapped["Batch"] = relationship("Batch", back_populates="entries")

    @property
    def entry_type(self) -> EntryType:
        return EntryType(self.type)
