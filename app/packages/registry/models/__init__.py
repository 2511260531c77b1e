"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.registry.models.base import Base
from app.packages.registry.models.batch import Batch, Entry
from app.packages.registry.models.dataset import Dataset
from app.packages.registry.models.download_package import DownloadPackage
from app.packages.registry.models.organization import Organization

__all__ = [
    "Base",
    "Batch",
    "Dataset",
    "DownloadPackage",
    "Entry",
    "Organization",
]
