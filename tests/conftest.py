"""测试夹具：为 pytest 提供数据库、对象存储与客户端的共享配置。"""

import os
import shutil
import tempfile
import uuid
from typing import Callable, Generator, Optional

_TMP_ROOT = tempfile.mkdtemp(prefix="registry_tests_")
TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"

# 配置在首次导入应用模块时读取，必须先于下面的导入写入环境变量
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["LOCK_BACKEND"] = "memory"
os.environ["STORAGE_PROVIDER_TYPE"] = "LOCAL"
os.environ["STORAGE_LOCAL_ROOT"] = os.path.join(_TMP_ROOT, "buckets")
os.environ["LOG_DIR"] = os.path.join(_TMP_ROOT, "log")
os.environ["JWT_SECRET_KEY"] = "registry-test-secret"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from app.main import app  # noqa: E402
from app.packages.registry.core.dependencies import get_db, get_object_system  # noqa: E402
from app.packages.registry.core.security import create_access_token  # noqa: E402
from app.packages.registry.db import session as db_session  # noqa: E402
from app.packages.registry.db.init_db import init_db  # noqa: E402
from app.packages.registry.models import Dataset, Organization  # noqa: E402
from app.packages.registry.services.object_system import LocalObjectSystem  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    init_db()
    yield

    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)
    shutil.rmtree(_TMP_ROOT, ignore_errors=True)


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(tmp_path) -> LocalObjectSystem:
    """每个用例独立的本地对象存储根目录。"""
    return LocalObjectSystem(tmp_path / "buckets")


@pytest.fixture()
def client(store):
    """构建 FastAPI TestClient，并注入测试专用的数据库与对象存储依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_system] = lambda: store

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def unique_slug(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


@pytest.fixture()
def new_slug() -> Callable[[str], str]:
    return unique_slug


@pytest.fixture()
def auth_headers() -> Callable[..., dict[str, str]]:
    """按主体与角色签发 Bearer 令牌。"""
    def _headers(sub: str = "alice", roles: tuple[str, ...] = ()) -> dict[str, str]:
        token = create_access_token({"sub": sub, "username": sub, "roles": list(roles)})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def make_dataset(db_session_fixture) -> Callable[..., Dataset]:
    """直接在数据库中创建组织与数据集，返回绑定到当前会话的数据集。"""
    def _make(owner_id: Optional[str] = "alice", is_public: bool = False, org_slug: Optional[str] = None) -> Dataset:
        db = db_session_fixture
        org_slug = org_slug or unique_slug("org")
        if db.get(Organization, org_slug) is None:
            db.add(Organization(slug=org_slug, name=org_slug, owner_id=owner_id, is_public=is_public))
            db.flush()
        dataset = Dataset(slug=unique_slug("ds"), organization_slug=org_slug, name="dataset")
        db.add(dataset)
        db.commit()
        db.refresh(dataset)
        return dataset

    return _make
