from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AppVersionRead(BaseModel):
    """版本记录的完整视图 (管理接口使用)。"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    version_code: int
    version_name: str
    file_name: str
    file_path: str
    file_size: Optional[int] = None
    file_size_display: Optional[str] = None
    release_notes: Optional[str] = None
    is_mandatory: bool
    is_active: bool
    download_count: int
    uploaded_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AppVersionPublic(BaseModel):
    """上传 / 合并完成后返回给调用方的公开字段。"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    file_name: str
    file_size: Optional[int] = None
    version_code: int
    version_name: str


class AppVersionUpdatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    release_notes: Optional[str] = Field(None, alias="releaseNotes")
    is_mandatory: Optional[bool] = Field(None, alias="isMandatory")
    is_active: Optional[bool] = Field(None, alias="isActive")


class LatestVersionInfo(BaseModel):
    version_code: int
    version_name: str
    release_notes: Optional[str] = None
    is_mandatory: bool
    download_url: str
    file_size: Optional[int] = None


class CheckUpdateResult(BaseModel):
    update_available: bool
    current_version: int
    latest_version: Optional[LatestVersionInfo] = None
