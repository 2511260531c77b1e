"""批次与条目 CRUD。"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, func, update
from sqlalchemy.orm import Session

from app.packages.registry.core.enums import BatchStatus, EntryType
from app.packages.registry.crud.base import CRUDBase
from app.packages.registry.models.batch import Batch, Entry


class CRUDBatch(CRUDBase[Batch]):
    def get_for_dataset(self, db: Session, dataset_id: int, token: str) -> Optional[Batch]:
        return (
            self.query(db)
            .filter(Batch.token == token, Batch.dataset_id == dataset_id)
            .populate_existing()
            .first()
        )

    def compare_and_set_status(
        self,
        db: Session,
        token: str,
        *,
        expected: BatchStatus,
        target: BatchStatus,
        end_time: datetime,
    ) -> bool:
        """仅当当前状态等于 ``expected`` 时写入 ``target``，返回是否命中。"""
        result = db.execute(
            update(Batch)
            .where(Batch.token == token, Batch.status == int(expected))
            .values(status=int(target), end_time=end_time)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class CRUDEntry(CRUDBase[Entry]):
    def list_by_batch(self, db: Session, token: str) -> List[Entry]:
        return self.query(db).filter(Entry.batch_token == token).order_by(Entry.id.asc()).all()

    def totals_for_batch(self, db: Session, token: str) -> tuple[int, int]:
        """返回批次条目的 (字节总数, 文件条目数)。"""
        row = (
            db.query(
                func.coalesce(func.sum(Entry.size), 0),
                func.coalesce(func.sum(case((Entry.type == int(EntryType.FILE), 1), else_=0)), 0),
            )
            .filter(Entry.batch_token == token)
            .one()
        )
        return int(row[0]), int(row[1])

    def list_committed(self, db: Session, dataset_id: int, *, path_prefix: str = "") -> List[Entry]:
        """数据集的持久清单：只包含已提交批次的条目。"""
        query = (
            self.query(db)
            .join(Batch, Batch.token == Entry.batch_token)
            .filter(Batch.dataset_id == dataset_id, Batch.status == int(BatchStatus.COMMITTED))
        )
        if path_prefix:
            query = query.filter(Entry.path.startswith(path_prefix, autoescape=True))
        return query.order_by(Entry.path.asc(), Entry.id.asc()).all()


batch_crud = CRUDBatch(Batch)
entry_crud = CRUDEntry(Entry)
