# app/repo/crud/app_version/app_version_repo.py
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.app_version.app_version import AppVersion
from app.repo.crud.common.base_repo import BaseRepository


class AppVersionRepository(BaseRepository[AppVersion]):
    def __init__(self, db: AsyncSession, context: Optional[Dict[str, Any]] = None):
        super().__init__(db=db, model=AppVersion, context=context)

    async def get_latest_active(self) -> Optional[AppVersion]:
        """最新版本 = 所有启用记录中 VersionCode 最大的一条。"""
        stmt = (
            self._base_stmt()
            .where(self.model.is_active == 1)
            .order_by(self.model.version_code.desc())
            .limit(1)
        )
        return await self._run_and_scalar(stmt, "get_latest_active")

    async def list_versions(self, include_inactive: bool = False) -> List[AppVersion]:
        stmt = self._base_stmt()
        if not include_inactive:
            stmt = stmt.where(self.model.is_active == 1)
        stmt = stmt.order_by(self.model.version_code.desc())
        return await self._run_and_scalars(stmt, "list_versions")

    async def increment_download_count(self, version_id: int) -> int:
        """
        UPDATE ... SET DownloadCount = DownloadCount + 1，由数据库完成自增，
        并发下载不会丢计数。返回受影响行数。
        """
        stmt = (
            update(self.model)
            .where(self.model.id == version_id)
            .values(download_count=self.model.download_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

