# app/api/routes/app_version/chunk_upload_router.py

from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from app.api.dependencies.permissions import require_login
from app.api.dependencies.services import get_chunk_upload_service
from app.core.api_response import StandardResponse, response_success
from app.schemas.app_version.app_version_schemas import AppVersionPublic
from app.schemas.app_version.chunk_upload_schemas import (
    ChunkReceivedResult,
    ChunkUploadInitPayload,
    ChunkUploadInitResult,
    ChunkUploadStatus,
    StaleSessionCleanupResult,
)
from app.schemas.users.user_context import UserContext
from app.services.app_version.chunk_upload_service import ChunkUploadService

router = APIRouter(dependencies=[Depends(require_login)])


@router.post(
    "/init",
    response_model=StandardResponse[ChunkUploadInitResult],
    summary="初始化分片上传会话",
)
async def init_chunk_upload(
        payload: ChunkUploadInitPayload,
        current_user: UserContext = Depends(require_login),
        service: ChunkUploadService = Depends(get_chunk_upload_service),
):
    session = await service.init_upload(
        file_name=payload.file_name,
        declared_file_size=payload.file_size,
        total_chunks=payload.total_chunks,
        version_code=payload.version_code,
        version_name=payload.version_name,
        release_notes=payload.release_notes,
        is_mandatory=payload.is_mandatory,
        uploaded_by=current_user.id,
    )
    return response_success(
        data=ChunkUploadInitResult(
            upload_id=session.upload_id,
            total_chunks=session.total_chunks,
            max_chunk_size=service.upload_config.max_chunk_size,
        ),
        message="Upload session created",
    )


# /stale 必须在 /{upload_id} 之前注册
@router.delete(
    "/stale",
    response_model=StandardResponse[StaleSessionCleanupResult],
    summary="清理长时间无进展的上传会话",
)
async def cleanup_stale_sessions(
        max_age_hours: float = Query(24, gt=0, description="超过该时长没有新分片的会话会被删除"),
        service: ChunkUploadService = Depends(get_chunk_upload_service),
):
    result = await service.cleanup_stale_sessions(max_age_hours)
    return response_success(data=result)


@router.post(
    "/{upload_id}/complete",
    response_model=StandardResponse[AppVersionPublic],
    status_code=status.HTTP_201_CREATED,
    summary="合并分片并登记新版本",
)
async def complete_chunk_upload(
        upload_id: str,
        current_user: UserContext = Depends(require_login),
        service: ChunkUploadService = Depends(get_chunk_upload_service),
):
    version = await service.complete_upload(upload_id, principal_id=current_user.id)
    return response_success(
        data=AppVersionPublic.model_validate(version),
        http_status=status.HTTP_201_CREATED,
        message="APK uploaded successfully",
    )


@router.get(
    "/{upload_id}/status",
    response_model=StandardResponse[ChunkUploadStatus],
    summary="查询分片上传进度 (断点续传)",
)
async def get_chunk_upload_status(
        upload_id: str,
        service: ChunkUploadService = Depends(get_chunk_upload_service),
):
    result = await service.get_upload_status(upload_id)
    return response_success(data=result)


@router.post(
    "/{upload_id}/{chunk_index}",
    response_model=StandardResponse[ChunkReceivedResult],
    summary="上传单个分片",
)
async def upload_chunk(
        upload_id: str,
        chunk_index: int,
        chunk: UploadFile = File(..., description="分片字节"),
        service: ChunkUploadService = Depends(get_chunk_upload_service),
):
    # 多读 1 字节，超限由 service 拒绝
    data = await chunk.read(service.upload_config.max_chunk_size + 1)
    result = await service.upload_chunk(upload_id, chunk_index, data)
    return response_success(data=result)


@router.delete(
    "/{upload_id}",
    response_model=StandardResponse[None],
    summary="放弃上传，删除分片与会话",
)
async def abort_chunk_upload(
        upload_id: str,
        service: ChunkUploadService = Depends(get_chunk_upload_service),
):
    await service.abort_upload(upload_id)
    return response_success(message="Upload session removed")
