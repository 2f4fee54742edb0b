from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.config.settings import settings


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    aiosqlite 默认自己发 BEGIN，导致 SAVEPOINT / ROLLBACK TO 行为不正确。
    关掉驱动层的事务处理，由 SQLAlchemy 显式发 BEGIN（SQLAlchemy 文档推荐写法）。
    批量同步依赖每条记录一个 SAVEPOINT，开发和测试用 SQLite 时必须打开。
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    new_engine = create_async_engine(url, echo=echo, **kwargs)
    if url.startswith("sqlite"):
        enable_sqlite_savepoints(new_engine)
    return new_engine


# 初始化数据库引擎和 Session
engine = build_engine(settings.database.url, echo=settings.database.echo)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    提供一个数据库会话，并采用明确的事务控制。
    """
    session = AsyncSessionLocal()
    try:
        yield session
        # 路由函数成功执行，最后提交所有尚未提交的更改
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_db_and_tables(bind: AsyncEngine = None):
    # 注册所有表模型
    import app.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
