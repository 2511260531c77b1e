"""批次路由：开启、追加条目、提交与回滚。"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.packages.registry.api.v1.schemas.batches import (
    BatchResponse,
    BatchSummaryResponse,
    EntryResponse,
)
from app.packages.registry.core.constants import HTTP_STATUS_OK
from app.packages.registry.core.dependencies import get_auth_manager, get_db, get_object_system
from app.packages.registry.core.enums import EntryType
from app.packages.registry.core.responses import create_response
from app.packages.registry.models.batch import Batch
from app.packages.registry.models.dataset import Dataset
from app.packages.registry.services.auth_manager import AuthManager
from app.packages.registry.services.batch_service import batch_service
from app.packages.registry.services.namespace_service import namespace_service
from app.packages.registry.services.object_system import ObjectSystem

router = APIRouter(prefix="/orgs/{org}/ds/{ds}/batches", tags=["batches"])


def _entry_type_value(raw: str) -> int:
    """条目类型既可以是名称（FILE/DIRECTORY/OTHER）也可以是数值；无法识别时返回 -1 交由服务层拒绝。"""
    text = (raw or "").strip()
    if text.lstrip("-").isdigit():
        return int(text)
    member = EntryType.__members__.get(text.upper())
    return int(member) if member is not None else -1


def _summary(db: Session, batch: Batch, dataset: Dataset) -> dict:
    data = batch_service.serialize_batch(batch)
    data["entries"] = [batch_service.serialize_entry(entry) for entry in batch.entries]
    db.refresh(dataset)
    data["dataset_size"] = int(dataset.size or 0)
    data["dataset_objects_count"] = int(dataset.objects_count or 0)
    return data


@router.post("", response_model=BatchResponse)
def begin_batch(
    org: str,
    ds: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    dataset = namespace_service.resolve_dataset(db, auth, org, ds, manage=True)
    principal = auth.get_current_principal()
    user_name = principal.username if principal is not None else ""
    batch = batch_service.begin(db, dataset, user_name)
    return create_response("开启批次成功", batch_service.serialize_batch(batch), HTTP_STATUS_OK)


@router.get("/{token}", response_model=BatchResponse)
def get_batch(
    org: str,
    ds: str,
    token: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    dataset = namespace_service.resolve_dataset(db, auth, org, ds)
    batch = batch_service.get_batch(db, dataset, token)
    data = batch_service.serialize_batch(batch)
    data["entries"] = [batch_service.serialize_entry(entry) for entry in batch.entries]
    return create_response("获取批次成功", data, HTTP_STATUS_OK)


@router.post("/{token}/entries", response_model=EntryResponse)
def add_entry(
    org: str,
    ds: str,
    token: str,
    path: str = Form(...),
    hash: str = Form(...),
    size: int = Form(...),
    type: str = Form("FILE"),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
    store: ObjectSystem = Depends(get_object_system),
):
    """追加条目；可选的 ``file`` 字段携带文件内容，长度与哈希需与声明一致。"""
    dataset = namespace_service.resolve_dataset(db, auth, org, ds, manage=True)
    data = file.file.read() if file is not None else None
    entry = batch_service.add_entry(
        db,
        store,
        dataset,
        token,
        path=path,
        hash=hash,
        size=size,
        type=_entry_type_value(type),
        data=data,
    )
    return create_response("添加条目成功", batch_service.serialize_entry(entry), HTTP_STATUS_OK)


@router.post("/{token}/commit", response_model=BatchSummaryResponse)
def commit_batch(
    org: str,
    ds: str,
    token: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
    store: ObjectSystem = Depends(get_object_system),
):
    dataset = namespace_service.resolve_dataset(db, auth, org, ds, manage=True)
    batch = batch_service.commit(db, store, dataset, token)
    return create_response("提交批次成功", _summary(db, batch, dataset), HTTP_STATUS_OK)


@router.post("/{token}/rollback", response_model=BatchSummaryResponse)
def rollback_batch(
    org: str,
    ds: str,
    token: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
    store: ObjectSystem = Depends(get_object_system),
):
    dataset = namespace_service.resolve_dataset(db, auth, org, ds, manage=True)
    batch = batch_service.rollback(db, store, dataset, token)
    return create_response("回滚批次成功", _summary(db, batch, dataset), HTTP_STATUS_OK)
