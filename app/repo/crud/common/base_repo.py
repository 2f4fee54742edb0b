from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from app.core.logger import get_logger
from app.infra.db.repo_registrar import RepositoryRegistrar

ModelType = TypeVar("ModelType", bound=SQLModel)

logger = get_logger("BaseRepository")


class BaseRepository(Generic[ModelType], RepositoryRegistrar):
    """
    仓储基类：只做单表的增删改查，不自己提交事务。
    提交 / 回滚 / SAVEPOINT 由 Service 层决定。
    """

    def __init__(self, db: AsyncSession, model: Type[ModelType], context: dict = None):
        self.db = db
        self.model = model
        self.context = context or {}

    # ==========================
    # 数据创建方法 (Create)
    # ==========================

    async def create(self, obj_in: Union[BaseModel, Dict[str, Any]]) -> ModelType:
        """
        创建一个新的对象实例，并将其添加到会话中。
        flush 之后自增主键即可用，唯一约束冲突也在这里抛出。
        """
        create_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        db_obj = self.model(**create_data)
        self.db.add(db_obj)
        await self.db.flush()
        await self.db.refresh(db_obj)
        return db_obj

    # ==========================
    # 数据更新方法 (Update)
    # ==========================

    async def update(self, db_obj: ModelType, obj_in: Union[BaseModel, Dict[str, Any]]) -> ModelType:
        """在内存中更新一个ORM对象的属性 (Read-Modify-Write模式)。"""
        update_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(db_obj, field, value)

        self.db.add(db_obj)
        await self.db.flush()
        await self.db.refresh(db_obj)
        return db_obj

    # ==========================
    # 数据删除方法 (Delete)
    # ==========================

    async def delete(self, db_obj: ModelType) -> None:
        """从数据库中物理删除一个对象。"""
        await self.db.delete(db_obj)
        await self.db.flush()

    # ==========================
    # 数据查询方法 (Query)
    # ==========================

    def _base_stmt(self):
        return select(self.model)

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        stmt = self._base_stmt().where(self.model.id == id)
        return await self._run_and_scalar(stmt, "get_by_id")

    async def count(self, *conditions) -> int:
        stmt = select(func.count()).select_from(self.model)
        if conditions:
            stmt = stmt.where(*conditions)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def _run_and_scalar(self, stmt, method: str):
        try:
            result = await self.db.execute(stmt)
            return result.scalars().first()
        except Exception as e:
            logger.error(f"[{self.__class__.__name__}.{method}] Failed: {e}")
            raise

    async def _run_and_scalars(self, stmt, method: str):
        try:
            result = await self.db.execute(stmt)
            return result.scalars().all()
        except Exception as e:
            logger.error(f"[{self.__class__.__name__}.{method}] Failed: {e}")
            raise
