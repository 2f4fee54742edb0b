from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logger import logger
from app.core.request_scope import get_request_scope
from app.infra.db.repository_factory_auto import RepositoryFactory
from app.infra.db.session import get_session


def get_repository_factory(
        session: AsyncSession = Depends(get_session),
        context: dict = Depends(get_request_scope),
) -> RepositoryFactory:
    """
    专为 FastAPI API 请求设计的依赖注入函数。
    session 与请求上下文都来自当前请求，整个请求共用一个事务。
    """
    logger.debug(f"[get repo factory context]: {context}")
    return RepositoryFactory(db=session, context=context)
