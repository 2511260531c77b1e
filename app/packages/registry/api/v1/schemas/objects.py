"""对象列表与库存的响应模型。"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from app.packages.registry.api.v1.schemas.batches import EntryItem
from app.packages.registry.api.v1.schemas.common import ResponseEnvelope


class ObjectItem(BaseModel):
    name: str
    size: int
    content_type: str
    last_modified: Optional[str] = None
    etag: Optional[str] = None


ObjectListResponse = ResponseEnvelope[list[ObjectItem]]
InventoryResponse = ResponseEnvelope[list[EntryItem]]
