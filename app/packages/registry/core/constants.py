"""常量定义：响应码与注册中心的命名约定。"""

HTTP_STATUS_OK = 200

# 物理桶名：{组织 slug}-{数据集 slug}
BUCKET_NAME_FORMAT = "{org}-{ds}"

# 批次暂存区前缀，位于数据集桶内，不出现在对象列表中
BATCH_STAGING_PREFIX = "_batches"

# 组织/数据集 slug 的持久化长度上限（校验器本身允许到 255）
SLUG_MAX_LENGTH = 128

ACCESS_TOKEN_TYPE = "bearer"

DENY_REASON_UNAUTHENTICATED = "unauthenticated"
DENY_REASON_NOT_OWNER = "not_owner"
