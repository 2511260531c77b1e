"""组织与数据集路由定义。"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.registry.api.v1.schemas.organizations import (
    DatasetCreate,
    DatasetResponse,
    DeleteResponse,
    OrganizationCreate,
    OrganizationResponse,
)
from app.packages.registry.core.constants import HTTP_STATUS_OK
from app.packages.registry.core.dependencies import get_auth_manager, get_db, get_object_system
from app.packages.registry.core.responses import create_response
from app.packages.registry.services.auth_manager import AuthManager
from app.packages.registry.services.namespace_service import namespace_service
from app.packages.registry.services.object_system import ObjectSystem
from app.packages.registry.services.organization_service import organization_service

router = APIRouter(prefix="/orgs", tags=["organizations"])
datasets_router = APIRouter(prefix="/datasets", tags=["organizations"])


@router.post("", response_model=OrganizationResponse)
def create_organization(
    payload: OrganizationCreate,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    """创建组织，当前用户成为所有者。"""
    organization = organization_service.create_organization(
        db,
        auth,
        name=payload.name,
        slug=payload.slug,
        description=payload.description,
        is_public=payload.is_public,
    )
    data = organization_service.serialize_organization(organization)
    return create_response("创建组织成功", data, HTTP_STATUS_OK)


@router.get("/{org}", response_model=OrganizationResponse)
def get_organization(
    org: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    organization = namespace_service.resolve_organization(db, auth, org)
    data = organization_service.serialize_organization(organization)
    return create_response("获取组织成功", data, HTTP_STATUS_OK)


@router.delete("/{org}", response_model=DeleteResponse)
def delete_organization(
    org: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
    store: ObjectSystem = Depends(get_object_system),
):
    """删除组织及其全部数据集、批次与桶。"""
    organization_service.delete_organization(db, auth, store, org)
    return create_response("删除组织成功", {"org": org}, HTTP_STATUS_OK)


@router.post("/{org}/ds", response_model=DatasetResponse)
def create_dataset(
    org: str,
    payload: DatasetCreate,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    dataset = organization_service.create_dataset(
        db,
        auth,
        org,
        name=payload.name,
        slug=payload.slug,
        description=payload.description,
        password=payload.password,
    )
    return create_response("创建数据集成功", organization_service.serialize_dataset(dataset), HTTP_STATUS_OK)


@router.get("/{org}/ds/{ds}", response_model=DatasetResponse)
def get_dataset(
    org: str,
    ds: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    dataset = namespace_service.resolve_dataset(db, auth, org, ds)
    return create_response("获取数据集成功", organization_service.serialize_dataset(dataset), HTTP_STATUS_OK)


@router.delete("/{org}/ds/{ds}", response_model=DeleteResponse)
def delete_dataset(
    org: str,
    ds: str,
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
    store: ObjectSystem = Depends(get_object_system),
):
    organization_service.delete_dataset(db, auth, store, org, ds)
    return create_response("删除数据集成功", {"org": org, "dataset": ds}, HTTP_STATUS_OK)


@datasets_router.get("/resolve", response_model=DatasetResponse)
def resolve_dataset_tag(
    tag: Optional[str] = Query(None, description="org/dataset 形式的数据集引用"),
    db: Session = Depends(get_db),
    auth: AuthManager = Depends(get_auth_manager),
):
    """按标签解析数据集，两段标识分别校验。"""
    dataset = namespace_service.resolve_tag(db, auth, tag)
    return create_response("获取数据集成功", organization_service.serialize_dataset(dataset), HTTP_STATUS_OK)
