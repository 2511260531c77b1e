"""下载包模型：数据集的限时导出清单，仅参与级联删除。"""

import json
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import expression

from app.packages.registry.models.base import Base, CreationDateMixin


class DownloadPackage(CreationDateMixin, Base):
    __tablename__ = "download_packages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    dataset_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("datasets.id", ondelete="CASCADE"), index=True
    )
    user_name: Mapped[str] = mapped_column(String(255))
    expiration_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, server_default=expression.false())
    # 请求导出的路径集合，JSON 数组文本
    paths: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def path_list(self) -> List[str]:
        return json.loads(self.paths) if self.paths else []
