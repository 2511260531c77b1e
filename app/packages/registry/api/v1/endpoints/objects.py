"""数据集对象路由：列表、读取与整桶删除；单对象写入只能通过批次完成。"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.packages.registry.api.v1.schemas.objects import InventoryResponse, ObjectListResponse
from app.packages.registry.api.v1.schemas.organizations import DeleteResponse
from app.packages.registry.core.constants import HTTP_STATUS_OK
from app.packages.registry.core.dependencies import get_auth_manager, get_db, get_object_system
from app.packages.registry.core.responses import create_response
from app.packages.registry.core.timezone import format_datetime
from app.packages.registry.services.auth_manager import AuthManager
from app.packages.registry.services.batch_service import batch_service
from app.packages.registry.services.object_system import ObjectSystem
from app.packages.registry.services.objects_service import objects_service

router = APIRouter(prefix="/orgs/{org}/ds/{ds}", tags=["objects"])


@router.get("/objects", response_model=ObjectListResponse)
def list_objects(
    org: str,
    ds: str,
    path: Optional[str] = Query("", description="对象键前缀"),
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
    store: ObjectSystem = Depends(get_object_system),
):
    items = [
        {
            "name": info.name,
            "size": info.size,
            "content_type": info.content_type,
            "last_modified": format_datetime(info.last_modified),
            "etag": info.etag,
        }
        for info in objects_service.list_objects(db, auth, store, org, ds, path)
    ]
    return create_response("获取对象列表成功", items, HTTP_STATUS_OK)


@router.get("/objects/content")
def get_object_content(
    org: str,
    ds: str,
    path: str = Query(..., description="对象键"),
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
    store: ObjectSystem = Depends(get_object_system),
):
    """返回对象原始字节。"""
    result = objects_service.get_object(db, auth, store, org, ds, path)
    response = Response(content=result.data, media_type=result.content_type)
    response.headers["Content-Disposition"] = f"attachment; filename*=UTF-8''{quote(result.name)}"
    return response


@router.post("/objects", response_model=DeleteResponse)
def add_object(
    org: str,
    ds: str,
    path: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    objects_service.add_object(db, auth, org, ds, path)


@router.delete("/objects", response_model=DeleteResponse)
def delete_object(
    org: str,
    ds: str,
    path: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    objects_service.delete_object(db, auth, org, ds, path)


@router.delete("/objects/all", response_model=DeleteResponse)
def delete_all_objects(
    org: str,
    ds: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
    store: ObjectSystem = Depends(get_object_system),
):
    """删除数据集对应的整个桶，不修改数据集的聚合值。"""
    removed = objects_service.delete_all(db, auth, store, org, ds)
    return create_response("删除全部对象成功", {"removed": removed}, HTTP_STATUS_OK)


@router.get("/inventory", response_model=InventoryResponse)
def list_inventory(
    org: str,
    ds: str,
    path: Optional[str] = Query("", description="条目路径前缀"),
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    """已提交批次中的条目清单。"""
    entries = objects_service.list_inventory(db, auth, org, ds, path)
    data = [batch_service.serialize_entry(entry) for entry in entries]
    return create_response("获取库存成功", data, HTTP_STATUS_OK)
