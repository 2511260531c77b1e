"""批次服务：一次上传事务的开启、条目累积、提交与回滚。

状态只允许 OPEN -> COMMITTED 或 OPEN -> ROLLED_BACK，且只发生一次。
提交在同一个数据库事务里完成两件事：批次状态的比较并交换，以及数据集
``size``/``objects_count`` 的增量更新；任何一步失败都整体回滚，批次保持 OPEN。

随条目上传的字节先写入桶内暂存区 ``_batches/<token>/``，不出现在对象列表中。
库存以数据库为准：提交事务落盘后才把暂存对象搬到最终路径，搬运失败只记录日志，
对同一 token 再次调用 ``commit`` 会继续未完成的搬运。
"""

from __future__ import annotations

import hashlib
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.packages.registry.core.enums import BatchStatus, EntryType
from app.packages.registry.core.exceptions import (
    BadRequestException,
    ConflictException,
    NotFoundException,
    ObjectStoreException,
)
from app.packages.registry.core.locks import batch_lock
from app.packages.registry.core.logger import logger
from app.packages.registry.core.timezone import format_datetime, utcnow
from app.packages.registry.crud.batches import batch_crud, entry_crud
from app.packages.registry.crud.datasets import dataset_crud
from app.packages.registry.models.batch import Batch, Entry
from app.packages.registry.models.dataset import Dataset
from app.packages.registry.services.bucket_service import bucket_name_for, bucket_service
from app.packages.registry.services.object_system import ObjectSystem, ObjectSystemError
from app.packages.registry.utils.path_utils import (
    norm_entry_path,
    norm_object_key,
    staging_key,
    staging_prefix,
)


def plan_transition(current: BatchStatus, target: BatchStatus, context: Optional[dict[str, Any]] = None) -> bool:
    """判定一次终态迁移。

    返回 ``True`` 表示需要执行 ``current -> target``；返回 ``False`` 表示批次
    已处于同一终态，本次调用是幂等重放；请求另一个终态时抛出冲突异常。
    """
    if not target.is_terminal:
        raise ValueError(f"{target.name} is not a terminal batch status")
    if current is BatchStatus.OPEN:
        return True
    if current is target:
        return False
    raise ConflictException(
        f"批次已处于 {current.name} 状态，不能变更为 {target.name}",
        {**(context or {}), "status": current.name},
    )


def _context(dataset: Dataset, token: str) -> dict[str, Any]:
    return {"org": dataset.organization_slug, "dataset": dataset.slug, "batch": token}


class BatchService:
    # ----------------------------
    # 开启与查询
    # ----------------------------
    def begin(self, db: Session, dataset: Dataset, user_name: str) -> Batch:
        """为已通过解析与鉴权的数据集开启新批次。"""
        batch = batch_crud.create(
            db,
            {
                "token": uuid.uuid4().hex,
                "dataset_id": dataset.id,
                "user_name": user_name,
                "status": int(BatchStatus.OPEN),
                "start_time": utcnow(),
            },
        )
        logger.info(
            "Batch %s opened by %s on %s",
            batch.token,
            user_name,
            dataset.tag,
            extra=_context(dataset, batch.token),
        )
        return batch

    def get_batch(self, db: Session, dataset: Dataset, token: str) -> Batch:
        batch = batch_crud.get_for_dataset(db, dataset.id, token)
        if batch is None:
            raise NotFoundException("批次不存在", _context(dataset, token))
        return batch

    # ----------------------------
    # 条目累积
    # ----------------------------
    def add_entry(
        self,
        db: Session,
        store: ObjectSystem,
        dataset: Dataset,
        token: str,
        *,
        path: str,
        hash: str,
        size: int,
        type: int = EntryType.FILE,
        data: Optional[bytes] = None,
    ) -> Entry:
        """向 OPEN 批次追加条目；附带字节时先写入暂存区。"""
        context = _context(dataset, token)
        try:
            entry_type = EntryType(type)
        except ValueError as exc:
            raise BadRequestException("条目类型不合法", {**context, "type": type}) from exc
        key = norm_entry_path(path)
        if key is None:
            raise BadRequestException("条目路径不合法", {**context, "path": path})
        if size is None or size < 0:
            raise BadRequestException("条目大小不合法", {**context, "path": key})
        digest = (hash or "").strip()
        if not digest:
            raise BadRequestException("缺少条目哈希", {**context, "path": key})
        if data is not None:
            self._check_payload(entry_type, key, digest, size, data, context)

        with batch_lock(token):
            batch = self.get_batch(db, dataset, token)
            if batch.state is not BatchStatus.OPEN:
                raise ConflictException(
                    "批次已结束，不能再添加条目", {**context, "status": batch.state.name}
                )
            if data is not None:
                self._stage(store, dataset, token, key, data, context)
            entry = entry_crud.create(
                db,
                {
                    "batch_token": token,
                    "path": key,
                    "hash": digest,
                    "size": size,
                    "type": int(entry_type),
                    "added_on": utcnow(),
                },
            )
        logger.debug("Entry %s added to batch %s", key, token, extra=context)
        return entry

    def _check_payload(
        self,
        entry_type: EntryType,
        key: str,
        digest: str,
        size: int,
        data: bytes,
        context: dict[str, Any],
    ) -> None:
        if entry_type is not EntryType.FILE:
            raise BadRequestException("只有文件条目可以携带内容", {**context, "path": key})
        if len(data) != size:
            raise BadRequestException("条目大小与内容长度不一致", {**context, "path": key})
        # 十六进制摘要比较时不区分大小写
        if hashlib.sha256(data).hexdigest() != digest.lower():
            raise BadRequestException("条目哈希与内容不匹配", {**context, "path": key})

    def _stage(
        self,
        store: ObjectSystem,
        dataset: Dataset,
        token: str,
        key: str,
        data: bytes,
        context: dict[str, Any],
    ) -> None:
        try:
            bucket = bucket_service.ensure_bucket(store, dataset.organization_slug, dataset.slug)
            store.put_object(bucket, staging_key(token, key), data)
        except ObjectSystemError as exc:
            logger.error("Failed to stage %s for batch %s: %s", key, token, exc, extra=context)
            raise ObjectStoreException("对象存储写入失败", {**context, "path": key}) from exc

    # ----------------------------
    # 终态迁移
    # ----------------------------
    def commit(self, db: Session, store: ObjectSystem, dataset: Dataset, token: str) -> Batch:
        """提交批次：条目并入数据集库存；对已提交批次重复调用是无副作用的重放。"""
        context = _context(dataset, token)
        with batch_lock(token):
            batch = self.get_batch(db, dataset, token)
            if plan_transition(batch.state, BatchStatus.COMMITTED, context):
                self._finish(db, dataset, batch, BatchStatus.COMMITTED, context)
            else:
                logger.info("Batch %s already committed, replaying", token, extra=context)
            self._promote_staged(db, store, dataset, token, context)
        return batch

    def rollback(self, db: Session, store: ObjectSystem, dataset: Dataset, token: str) -> Batch:
        """放弃批次：条目保留用于审计，但不计入聚合值与库存。"""
        context = _context(dataset, token)
        with batch_lock(token):
            batch = self.get_batch(db, dataset, token)
            if plan_transition(batch.state, BatchStatus.ROLLED_BACK, context):
                self._finish(db, dataset, batch, BatchStatus.ROLLED_BACK, context)
            else:
                logger.info("Batch %s already rolled back, replaying", token, extra=context)
            self._discard_staged(store, dataset, token, context)
        return batch

    def _finish(
        self,
        db: Session,
        dataset: Dataset,
        batch: Batch,
        target: BatchStatus,
        context: dict[str, Any],
    ) -> None:
        token = batch.token
        try:
            swapped = batch_crud.compare_and_set_status(
                db, token, expected=BatchStatus.OPEN, target=target, end_time=utcnow()
            )
            if swapped and target is BatchStatus.COMMITTED:
                size, files = entry_crud.totals_for_batch(db, token)
                dataset_crud.apply_inventory_delta(db, dataset.id, size=size, objects=files)
            if swapped:
                db.commit()
            else:
                db.rollback()
        except Exception:
            db.rollback()
            logger.exception("Failed to move batch %s to %s", token, target.name, extra=context)
            raise

        db.refresh(batch)
        if not swapped:
            # 其他写入者抢先完成了迁移：同一终态视为重放，否则冲突
            plan_transition(batch.state, target, context)
            return
        db.refresh(dataset)
        logger.info(
            "Batch %s %s; dataset %s now %s bytes in %s objects",
            token,
            target.name,
            dataset.tag,
            dataset.size,
            dataset.objects_count,
            extra=context,
        )

    def _promote_staged(
        self,
        db: Session,
        store: ObjectSystem,
        dataset: Dataset,
        token: str,
        context: dict[str, Any],
    ) -> None:
        bucket = bucket_name_for(dataset.organization_slug, dataset.slug)
        try:
            if not store.bucket_exists(bucket):
                return
            staged = [info.name for info in store.list_objects(bucket, staging_prefix(token))]
            if not staged:
                return
            available = set(staged)
            for entry in entry_crud.list_by_batch(db, token):
                source = staging_key(token, entry.path)
                if entry.type == int(EntryType.FILE) and source in available:
                    store.copy_object(bucket, source, entry.path)
            for key in staged:
                store.remove_object(bucket, key)
        except ObjectSystemError:
            logger.warning(
                "Promotion of staged objects for batch %s incomplete, commit again to resume",
                token,
                exc_info=True,
                extra=context,
            )

    def _discard_staged(self, store: ObjectSystem, dataset: Dataset, token: str, context: dict[str, Any]) -> None:
        bucket = bucket_name_for(dataset.organization_slug, dataset.slug)
        try:
            if not store.bucket_exists(bucket):
                return
            for info in list(store.list_objects(bucket, staging_prefix(token))):
                store.remove_object(bucket, info.name)
        except ObjectSystemError:
            logger.warning("Failed to discard staged objects for batch %s", token, exc_info=True, extra=context)

    # ----------------------------
    # 库存
    # ----------------------------
    def list_inventory(self, db: Session, dataset: Dataset, path_prefix: Optional[str] = None) -> List[Entry]:
        """数据集的持久库存：只包含已提交批次中的条目。"""
        return entry_crud.list_committed(db, dataset.id, path_prefix=norm_object_key(path_prefix))

    # ----------------------------
    # 序列化
    # ----------------------------
    @staticmethod
    def serialize_batch(batch: Batch) -> Dict[str, Any]:
        return {
            "token": batch.token,
            "user_name": batch.user_name,
            "status": batch.state.name,
            "start_time": format_datetime(batch.start_time),
            "end_time": format_datetime(batch.end_time),
        }

    @staticmethod
    def serialize_entry(entry: Entry) -> Dict[str, Any]:
        return {
            "path": entry.path,
            "hash": entry.hash,
            "size": int(entry.size or 0),
            "type": entry.entry_type.name,
            "added_on": format_datetime(entry.added_on),
        }


batch_service = BatchService()
