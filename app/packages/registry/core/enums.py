"""枚举定义：批次状态与条目类型，数据库中以小整数存储。"""

from enum import IntEnum


class BatchStatus(IntEnum):
    """批次生命周期：OPEN 只能迁移到 COMMITTED 或 ROLLED_BACK 之一。"""

    OPEN = 0
    COMMITTED = 1
    ROLLED_BACK = 2

    @property
    def is_terminal(self) -> bool:
        return self is not BatchStatus.OPEN


class EntryType(IntEnum):
    """批次条目类型，仅 FILE 计入数据集对象数。"""

    OTHER = 0
    DIRECTORY = 1
    FILE = 2
