# app/api/routes/meter/bulk_cmo_router.py

from fastapi import APIRouter, Depends

from app.api.dependencies.permissions import require_login
from app.api.dependencies.services import get_bulk_cmo_service
from app.core.api_response import StandardResponse, response_success
from app.schemas.meter.meter_sync_schemas import BulkSyncRequest, BulkSyncResult, BulkSyncStats
from app.schemas.users.user_context import UserContext
from app.services.meter.bulk_cmo_service import BulkCmoService

router = APIRouter()


@router.post(
    "/bulk-sync",
    response_model=StandardResponse[BulkSyncResult],
    summary="批量同步离线采集的 CMO",
)
async def bulk_sync(
        payload: BulkSyncRequest,
        current_user: UserContext = Depends(require_login),
        service: BulkCmoService = Depends(get_bulk_cmo_service),
):
    """单条失败不影响整批，逐条结果见 success / failed。"""
    result = await service.bulk_sync(current_user.id, payload)
    return response_success(
        data=result,
        message=f"Synced {result.success_count} of {result.total_count} CMOs",
    )


@router.get(
    "/bulk-stats",
    response_model=StandardResponse[BulkSyncStats],
    summary="同步统计 (总数 / 今日新增)",
    dependencies=[Depends(require_login)],
)
async def bulk_stats(service: BulkCmoService = Depends(get_bulk_cmo_service)):
    stats = await service.get_bulk_sync_stats()
    return response_success(data=stats)
