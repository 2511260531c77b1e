"""组织与数据集相关的请求/响应模型。"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.registry.api.v1.schemas.common import ResponseEnvelope


class OrganizationCreate(BaseModel):
    """创建组织；``slug`` 为空时由名称生成。"""

    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=128)
    description: Optional[str] = None
    is_public: bool = False


class DatasetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=128)
    description: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=1, max_length=128)


class DatasetItem(BaseModel):
    slug: str
    tag: str
    name: str
    description: Optional[str] = None
    internal_ref: str
    size: int
    objects_count: int
    protected: bool
    creation_date: Optional[str] = None


class OrganizationItem(BaseModel):
    slug: str
    name: str
    description: Optional[str] = None
    is_public: bool
    owner_id: Optional[str] = None
    creation_date: Optional[str] = None
    datasets: list[DatasetItem] = Field(default_factory=list)


OrganizationResponse = ResponseEnvelope[OrganizationItem]
DatasetResponse = ResponseEnvelope[DatasetItem]
DeleteResponse = ResponseEnvelope[Any]
