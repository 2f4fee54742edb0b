# app/infra/db/repository_factory_auto.py
from typing import Any, Dict, Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.request_scope import get_request_scope
from app.infra.db.repo_registrar import RepositoryRegistrar
from app.repo.crud.common.base_repo import BaseRepository

RepoType = TypeVar("RepoType", bound=BaseRepository)


class RepositoryNotFoundError(Exception):
    pass


class RepositoryFactory:
    """
    一个请求 (或一个后台任务) 内共享同一个 AsyncSession 的仓储工厂。
    仓储按需实例化并缓存；事务边界由调用方通过 commit / rollback 控制。
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        principal_id: Optional[int] = None,
        context: Optional[dict] = None,
    ):
        self._db = db
        if context:
            self.context = context
        elif principal_id is not None:
            self.context = {"principal_id": principal_id}
        else:
            self.context = get_request_scope()
        self._registry: Dict[str, BaseRepository] = {}

    def get_repo(self, name: str) -> BaseRepository:
        name = name.lower()
        if name not in self._registry:
            repo_cls = RepositoryRegistrar.registry.get(name)
            if not repo_cls:
                raise RepositoryNotFoundError(f"Repository '{name}' not registered.")
            self._registry[name] = repo_cls(self._db, context=self.context)
        return self._registry[name]

    def get_repo_by_type(self, repo_type: Type[RepoType]) -> RepoType:
        for repo in self._registry.values():
            if isinstance(repo, repo_type):
                return repo

        key = repo_type.__name__.replace("Repository", "").lower()
        if RepositoryRegistrar.registry.get(key) is repo_type:
            return self.get_repo(key)

        raise RepositoryNotFoundError(f"Repository of type '{repo_type.__name__}' not found.")

    def __getattr__(self, item: str) -> Any:
        if item.startswith("_"):
            raise AttributeError(item)
        try:
            return self.get_repo(item)
        except RepositoryNotFoundError:
            raise AttributeError(f"'RepositoryFactory' object has no attribute '{item}'")

    # ==========
    # Session 操作封装
    # ==========
    async def commit(self): await self._db.commit()
    async def rollback(self): await self._db.rollback()
    def get_session(self) -> AsyncSession: return self._db
