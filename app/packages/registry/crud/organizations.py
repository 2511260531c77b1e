"""组织 CRUD：管理组织相关的数据库操作。"""

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from app.packages.registry.crud.base import CRUDBase
from app.packages.registry.crud.datasets import dataset_crud
from app.packages.registry.models.dataset import Dataset
from app.packages.registry.models.organization import Organization


class CRUDOrganization(CRUDBase[Organization]):
    """提供组织实体的便捷查询方法。"""

    def get_by_slug(self, db: Session, slug: str) -> Optional[Organization]:
        return self.query(db).filter(Organization.slug == slug).first()

    def get_with_datasets(self, db: Session, slug: str) -> Optional[Organization]:
        """按 slug 加载组织，并一次性带出其全部数据集。"""
        return (
            self.query(db)
            .options(selectinload(Organization.datasets))
            .filter(Organization.slug == slug)
            .first()
        )

    def delete_cascade(self, db: Session, slug: str) -> None:
        """先级联删除组织下全部数据集，再删除组织本身，不提交事务。"""
        dataset_ids = list(db.scalars(select(Dataset.id).where(Dataset.organization_slug == slug)))
        dataset_crud.delete_cascade(db, dataset_ids)
        db.execute(
            delete(Organization)
            .where(Organization.slug == slug)
            .execution_options(synchronize_session=False)
        )


organization_crud = CRUDOrganization(Organization)
