"""批次相关的响应模型。"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from app.packages.registry.api.v1.schemas.common import ResponseEnvelope


class EntryItem(BaseModel):
    path: str
    hash: str
    size: int
    type: str
    added_on: Optional[str] = None


class BatchItem(BaseModel):
    token: str
    user_name: str
    status: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    entries: list[EntryItem] = Field(default_factory=list)


class BatchSummary(BatchItem):
    """终态迁移后的批次，附带数据集最新聚合值。"""

    dataset_size: int = 0
    dataset_objects_count: int = 0


BatchResponse = ResponseEnvelope[BatchItem]
BatchSummaryResponse = ResponseEnvelope[BatchSummary]
EntryResponse = ResponseEnvelope[EntryItem]
