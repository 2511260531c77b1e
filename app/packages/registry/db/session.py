"""Database engine and session factory configuration."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.packages.registry.core.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    # SQLite 连接默认只允许创建线程使用，请求线程池需要放开该限制
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(
    settings.sql_database_url,
    echo=settings.database_echo,
    **_engine_options(settings.sql_database_url),
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
