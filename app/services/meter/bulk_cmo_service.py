# app/services/meter/bulk_cmo_service.py
import time
from typing import Any, Dict, Optional

from pydantic import ValidationError

from app.core.exceptions import ValidationException
from app.enums.upload_enums import SyncRecordStatus
from app.infra.db.repository_factory_auto import RepositoryFactory
from app.models.meter.meter_info import MeterInfo
from app.repo.crud.meter.meter_info_repo import MeterInfoRepository
from app.schemas.meter.meter_sync_schemas import (
    METER_DATE_FIELDS,
    METER_FLAG_FIELDS,
    BulkSyncFailedItem,
    BulkSyncRequest,
    BulkSyncResult,
    BulkSyncStats,
    BulkSyncSuccessItem,
    MeterInfoSyncItem,
)
from app.services._base_service import BaseService
from app.utils.date_utils import format_date_for_sql_server, today_date_prefix


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}" for err in exc.errors()
        )
    return str(exc) or exc.__class__.__name__


class BulkCmoService(BaseService):
    """
    移动端离线 CMO 的批量同步。

    整批共用一个事务，每条记录各自一个 SAVEPOINT：
    单条失败只回滚自己的 SAVEPOINT 并记入 failed，循环继续；
    最后至少有一条成功才提交，否则整批回滚。
    """

    def __init__(self, factory: RepositoryFactory):
        super().__init__()
        self.factory = factory
        self.meter_repo: MeterInfoRepository = factory.get_repo_by_type(MeterInfoRepository)

    async def bulk_sync(self, principal_id: Optional[int], request: BulkSyncRequest) -> BulkSyncResult:
        records = request.cmos or []
        max_batch = self.settings.bulk_sync.max_batch_size
        if not records:
            raise ValidationException("CMOs array is required and must not be empty")
        if len(records) > max_batch:
            raise ValidationException(f"Maximum {max_batch} CMOs allowed per bulk sync")

        result = BulkSyncResult(
            bulk_group_id=request.bulk_group_id or f"bulk-{int(time.time() * 1000)}",
            building_name=request.building_name,
            total_count=len(records),
        )

        try:
            for raw in records:
                await self._sync_one(principal_id, request, raw, result)

            if result.success_count > 0:
                await self.factory.commit()
            else:
                await self.factory.rollback()
        except Exception as e:
            await self.factory.rollback()
            self.logger.error(f"Bulk sync {result.bulk_group_id} transaction error: {e}")
            raise

        self.logger.info(
            f"Bulk sync {result.bulk_group_id} ({request.building_name}): "
            f"{result.success_count} succeeded, {result.failed_count} failed"
        )
        return result

    async def _sync_one(
            self,
            principal_id: Optional[int],
            request: BulkSyncRequest,
            raw: Any,
            result: BulkSyncResult,
    ) -> None:
        raw_dict: Dict[str, Any] = raw if isinstance(raw, dict) else {}
        try:
            item = MeterInfoSyncItem.model_validate(raw)
            async with self.meter_repo.db.begin_nested():
                meter, status = await self._upsert(principal_id, request, item)
        except Exception as e:
            error = _describe_error(e)
            self.logger.warning(f"Bulk sync error for customer {raw_dict.get('CustomerId')}: {error}")
            result.failed_count += 1
            result.failed.append(BulkSyncFailedItem(
                local_id=raw_dict.get("LocalId"),
                customer_id=raw_dict.get("CustomerId"),
                meter_index=raw_dict.get("MeterIndex"),
                error=error,
            ))
            return

        result.success_count += 1
        result.success.append(BulkSyncSuccessItem(
            local_id=item.local_id,
            server_id=meter.id,
            customer_id=item.customer_id,
            meter_index=item.meter_index,
            status=status,
        ))

    async def _upsert(
            self,
            principal_id: Optional[int],
            request: BulkSyncRequest,
            item: MeterInfoSyncItem,
    ) -> tuple[MeterInfo, SyncRecordStatus]:
        values = item.column_values()

        # 单条记录自己的值优先，否则用楼栋级默认值
        latitude = item.latitude if item.latitude is not None else request.latitude
        longitude = item.longitude if item.longitude is not None else request.longitude
        installed_by = item.meter_installed_by or request.install_by

        existing = await self.meter_repo.find_by_customer_or_old_consumer(item.customer_id, item.old_consumer_id)
        now = format_date_for_sql_server(None)

        if existing:
            update_data = dict(values)
            for key, value in (("latitude", latitude), ("longitude", longitude), ("meter_installed_by", installed_by)):
                if value is not None:
                    update_data[key] = value
            for key in METER_DATE_FIELDS:
                if key in update_data:
                    update_data[key] = format_date_for_sql_server(update_data[key]) if update_data[key] else None
            update_data["update_by"] = principal_id
            update_data["update_date"] = now

            meter = await self.meter_repo.update(existing, update_data)
            return meter, SyncRecordStatus.UPDATED

        create_data = dict(values)
        for flag in METER_FLAG_FIELDS:
            create_data[flag] = values.get(flag) or 0
        create_data.update({
            "old_consumer_id": item.old_consumer_id or item.customer_id,
            "install_date": format_date_for_sql_server(item.install_date),
            "revisit_dt": format_date_for_sql_server(item.revisit_dt) if item.revisit_dt else None,
            "approved_date": format_date_for_sql_server(item.approved_date) if item.approved_date else None,
            "latitude": latitude,
            "longitude": longitude,
            "meter_installed_by": installed_by,
            "is_apps_entry": 1,
            "is_active": 1,
            "create_by": principal_id,
            "create_date": now,
            "update_by": None,
            "update_date": None,
        })
        meter = await self.meter_repo.create(create_data)
        return meter, SyncRecordStatus.CREATED

    async def get_bulk_sync_stats(self) -> BulkSyncStats:
        total = await self.meter_repo.count_active()
        today = await self.meter_repo.count_active_created_since(today_date_prefix())
        return BulkSyncStats(total_records=total, today_records=today)
