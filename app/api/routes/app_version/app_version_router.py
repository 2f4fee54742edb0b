# app/api/routes/app_version/app_version_router.py

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse

from app.api.dependencies.permissions import require_login
from app.api.dependencies.services import get_app_version_service
from app.core.api_response import StandardResponse, response_success
from app.schemas.app_version.app_version_schemas import (
    AppVersionPublic,
    AppVersionRead,
    AppVersionUpdatePayload,
    CheckUpdateResult,
)
from app.schemas.users.user_context import UserContext
from app.services.app_version.app_version_service import APK_MIME_TYPE, AppVersionService

router = APIRouter()


@router.get(
    "/versions",
    response_model=StandardResponse[List[AppVersionRead]],
    summary="版本列表 (默认只含启用版本)",
)
async def list_versions(
        include_all: bool = Query(False, alias="all", description="为 true 时包含已停用版本"),
        service: AppVersionService = Depends(get_app_version_service),
):
    versions = await service.list_versions(include_inactive=include_all)
    return response_success(data=versions)


@router.get(
    "/latest",
    response_model=StandardResponse[Optional[AppVersionRead]],
    summary="最新启用版本",
)
async def get_latest_version(service: AppVersionService = Depends(get_app_version_service)):
    latest = await service.get_latest_version()
    return response_success(data=latest, message=None if latest else "No version available")


@router.get(
    "/check-update",
    response_model=StandardResponse[CheckUpdateResult],
    summary="App 检查是否有新版本",
)
async def check_update(
        version_code: int = Query(..., alias="versionCode", description="App 当前的 versionCode"),
        service: AppVersionService = Depends(get_app_version_service),
):
    result = await service.check_for_update(version_code)
    return response_success(data=result)


@router.get("/download/latest", summary="下载最新 APK")
async def download_latest(service: AppVersionService = Depends(get_app_version_service)):
    version, path = await service.download_latest()
    return FileResponse(path, media_type=APK_MIME_TYPE, filename=version.file_name)


@router.get("/download/{version_id}", summary="下载指定版本 APK")
async def download_version(
        version_id: int,
        service: AppVersionService = Depends(get_app_version_service),
):
    version, path = await service.download(version_id)
    return FileResponse(path, media_type=APK_MIME_TYPE, filename=version.file_name)


@router.post(
    "/upload",
    response_model=StandardResponse[AppVersionPublic],
    status_code=status.HTTP_201_CREATED,
    summary="整包上传 APK 并登记新版本",
)
async def upload_version(
        apk: UploadFile = File(..., description="APK 文件"),
        version_code: int = Form(..., alias="versionCode"),
        version_name: str = Form(..., alias="versionName"),
        release_notes: str = Form("", alias="releaseNotes"),
        is_mandatory: bool = Form(False, alias="isMandatory"),
        current_user: UserContext = Depends(require_login),
        service: AppVersionService = Depends(get_app_version_service),
):
    version = await service.upload_version(
        apk,
        version_code=version_code,
        version_name=version_name,
        release_notes=release_notes,
        is_mandatory=is_mandatory,
        uploaded_by=current_user.id,
    )
    return response_success(
        data=AppVersionPublic.model_validate(version),
        http_status=status.HTTP_201_CREATED,
        message="APK uploaded successfully",
    )


@router.put(
    "/{version_id}",
    response_model=StandardResponse[AppVersionRead],
    summary="修改版本说明 / 强制更新 / 启用状态",
    dependencies=[Depends(require_login)],
)
async def update_version(
        version_id: int,
        payload: AppVersionUpdatePayload,
        service: AppVersionService = Depends(get_app_version_service),
):
    updated = await service.update_version(version_id, payload)
    return response_success(data=updated, message="Version updated successfully")


@router.delete(
    "/{version_id}",
    response_model=StandardResponse[None],
    summary="删除版本 (连同 APK 文件)",
    dependencies=[Depends(require_login)],
)
async def delete_version(
        version_id: int,
        service: AppVersionService = Depends(get_app_version_service),
):
    await service.delete_version(version_id)
    return response_success(message="Version deleted successfully")
