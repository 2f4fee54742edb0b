import os
import tempfile

# 必须在导入 app 之前设置：settings 在首次导入时加载并缓存
_TEST_ROOT = tempfile.mkdtemp(prefix="cmo-tests-")
os.environ["ENV"] = "dev"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["UPLOAD_ROOT"] = _TEST_ROOT
os.environ["DATA_DIR"] = os.path.join(_TEST_ROOT, "data")
os.environ["LOG_DIR"] = os.path.join(_TEST_ROOT, "logs")
os.environ["LOG_TO_FILE"] = "false"
os.environ["UPLOAD_SESSION_BACKEND"] = "file"
os.environ["JWT_SECRET"] = "test-secret"

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.config.config_settings.config_schema import UploadConfig  # noqa: E402
from app.infra.db.repository_factory_auto import RepositoryFactory  # noqa: E402
from app.infra.db.session import build_engine, create_db_and_tables, get_session  # noqa: E402
from app.infra.storage.local_storage import local_storage  # noqa: E402
from app.infra.storage.session_store import FileSystemSessionStore  # noqa: E402
from app.services.app_version.app_version_service import AppVersionService  # noqa: E402
from app.services.app_version.chunk_upload_service import ChunkUploadService  # noqa: E402
from app.services.meter.bulk_cmo_service import BulkCmoService  # noqa: E402
from app.utils.jwt_utils import create_access_token  # noqa: E402

TEST_PRINCIPAL_ID = 7


@pytest.fixture
async def engine():
    # 单连接内存库，所有 session 看到同一份数据
    test_engine = build_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await create_db_and_tables(bind=test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def repo_factory(db_session):
    return RepositoryFactory(db_session, principal_id=TEST_PRINCIPAL_ID)


@pytest.fixture
def upload_config(tmp_path):
    return UploadConfig(
        apk_dir=str(tmp_path / "apk"),
        chunk_dir=str(tmp_path / "chunks"),
        temp_dir=str(tmp_path / "temp"),
        max_chunk_size=16,
        max_apk_size=1024,
        max_total_chunks=100,
        assembly_timeout_seconds=600,
    )


@pytest.fixture
def session_store(upload_config):
    return FileSystemSessionStore(upload_config.chunk_dir, local_storage)


@pytest.fixture
def version_service(repo_factory, upload_config):
    return AppVersionService(repo_factory, upload_config=upload_config)


@pytest.fixture
def chunk_service(repo_factory, session_store, upload_config, version_service):
    return ChunkUploadService(
        repo_factory,
        session_store=session_store,
        upload_config=upload_config,
        version_service=version_service,
    )


@pytest.fixture
def bulk_service(repo_factory):
    return BulkCmoService(repo_factory)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_access_token(TEST_PRINCIPAL_ID)}"}


@pytest.fixture
async def client(session_maker):
    from app.main import app

    async def _get_test_session():
        session = session_maker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    app.dependency_overrides[get_session] = _get_test_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver/api") as test_client:
        yield test_client
    app.dependency_overrides.clear()
