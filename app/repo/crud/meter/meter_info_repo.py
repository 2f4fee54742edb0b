# app/repo/crud/meter/meter_info_repo.py
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.meter.meter_info import MeterInfo
from app.repo.crud.common.base_repo import BaseRepository


class MeterInfoRepository(BaseRepository[MeterInfo]):
    def __init__(self, db: AsyncSession, context: Optional[Dict[str, Any]] = None):
        super().__init__(db=db, model=MeterInfo, context=context)

    async def find_by_customer_or_old_consumer(
            self, customer_id: Optional[str], old_consumer_id: Optional[str]
    ) -> Optional[MeterInfo]:
        """
        CustomerId 相等，或 OldConsumerId 相等 (入参缺省时用 CustomerId 兜底)，任一命中即视为已存在。
        不是复合键匹配。
        """
        lookup_old = old_consumer_id or customer_id
        conditions = []
        if customer_id is not None:
            conditions.append(self.model.customer_id == customer_id)
        if lookup_old is not None:
            conditions.append(self.model.old_consumer_id == lookup_old)
        if not conditions:
            return None

        stmt = self._base_stmt().where(or_(*conditions)).order_by(self.model.id.asc()).limit(1)
        return await self._run_and_scalar(stmt, "find_by_customer_or_old_consumer")

    async def count_active(self) -> int:
        return await self.count(self.model.is_active == 1)

    async def count_active_created_since(self, date_prefix: str) -> int:
        """CreateDate 是定长字符串，按字典序与 'YYYY-MM-DD' 比较即等价于按日期比较。"""
        return await self.count(
            self.model.is_active == 1,
            self.model.create_date >= date_prefix,
        )
