"""桶生命周期：数据集到物理桶的命名与幂等创建/删除。"""

from __future__ import annotations

from app.packages.registry.core.config import get_settings
from app.packages.registry.core.constants import BUCKET_NAME_FORMAT
from app.packages.registry.core.logger import logger
from app.packages.registry.services.object_system import (
    BucketAlreadyExistsError,
    BucketNotFoundError,
    ObjectSystem,
)


def bucket_name_for(org_slug: str, ds_slug: str) -> str:
    return BUCKET_NAME_FORMAT.format(org=org_slug, ds=ds_slug)


class BucketService:
    def ensure_bucket(self, store: ObjectSystem, org_slug: str, ds_slug: str) -> str:
        """保证数据集对应的桶存在并返回桶名；并发创建时“已存在”视为成功。"""
        bucket = bucket_name_for(org_slug, ds_slug)
        if store.bucket_exists(bucket):
            return bucket

        region = get_settings().storage_region
        if region is None:
            logger.warning(
                "No region specified in storage provider config, creating bucket %s with backend default",
                bucket,
                extra={"org": org_slug, "dataset": ds_slug, "bucket": bucket},
            )
        try:
            store.make_bucket(bucket, region)
            logger.info("Created bucket %s", bucket, extra={"bucket": bucket})
        except BucketAlreadyExistsError:
            logger.debug("Bucket %s was created concurrently", bucket, extra={"bucket": bucket})
        return bucket

    def remove_bucket(self, store: ObjectSystem, org_slug: str, ds_slug: str) -> bool:
        """删除桶及其内容；桶不存在时返回 ``False``。"""
        bucket = bucket_name_for(org_slug, ds_slug)
        if not store.bucket_exists(bucket):
            return False
        try:
            store.remove_bucket(bucket)
        except BucketNotFoundError:
            return False
        logger.info("Removed bucket %s", bucket, extra={"org": org_slug, "dataset": ds_slug, "bucket": bucket})
        return True


bucket_service = BucketService()
