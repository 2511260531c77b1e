"""数据集 CRUD：聚合值的原子增量与显式级联删除。"""

from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.packages.registry.crud.base import CRUDBase
from app.packages.registry.models.batch import Batch, Entry
from app.packages.registry.models.dataset import Dataset
from app.packages.registry.models.download_package import DownloadPackage


class CRUDDataset(CRUDBase[Dataset]):
    def apply_inventory_delta(self, db: Session, dataset_id: int, *, size: int, objects: int) -> None:
        """在当前事务中对聚合值做增量更新，由数据库完成读改写，避免丢失并发提交。"""
        db.execute(
            update(Dataset)
            .where(Dataset.id == dataset_id)
            .values(size=Dataset.size + size, objects_count=Dataset.objects_count + objects)
            .execution_options(synchronize_session=False)
        )

    def delete_cascade(self, db: Session, dataset_ids: list[int]) -> None:
        """按 条目 -> 批次 -> 下载包 -> 数据集 的顺序删除，不提交事务。"""
        if not dataset_ids:
            return
        tokens = select(Batch.token).where(Batch.dataset_id.in_(dataset_ids))
        statements = (
            delete(Entry).where(Entry.batch_token.in_(tokens)),
            delete(Batch).where(Batch.dataset_id.in_(dataset_ids)),
            delete(DownloadPackage).where(DownloadPackage.dataset_id.in_(dataset_ids)),
            delete(Dataset).where(Dataset.id.in_(dataset_ids)),
        )
        for statement in statements:
            db.execute(statement.execution_options(synchronize_session=False))


dataset_crud = CRUDDataset(Dataset)
