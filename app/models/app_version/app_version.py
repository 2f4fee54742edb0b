from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlmodel import SQLModel

from app.models.base.base_model import legacy_column


class AppVersion(SQLModel, table=True):
    """
    Android 现场 App 的一个可分发版本 (APK 元数据 + 存储路径)。
    IsMandatory / IsActive 沿用外部库的 0/1 整数列。
    """
    __tablename__ = "AppVersions"

    id: Optional[int] = legacy_column("Id", Integer, primary_key=True, autoincrement=True)

    # VersionCode 唯一：并发发布时由数据库兜底，后提交的一方得到唯一约束冲突
    version_code: int = legacy_column("VersionCode", Integer, nullable=False, unique=True, index=True)
    version_name: str = legacy_column("VersionName", String(50), nullable=False)
    file_name: str = legacy_column("FileName", String(255), nullable=False)
    file_path: str = legacy_column("FilePath", String(500), nullable=False, description="公开下载路径")
    file_size: Optional[int] = legacy_column("FileSize", BigInteger)
    release_notes: Optional[str] = legacy_column("ReleaseNotes", Text)
    is_mandatory: int = legacy_column("IsMandatory", Integer, default=0, nullable=False)
    is_active: int = legacy_column("IsActive", Integer, default=1, nullable=False, index=True)
    download_count: int = legacy_column("DownloadCount", Integer, default=0, nullable=False)
    uploaded_by: Optional[int] = legacy_column("UploadedBy", Integer)

    created_at: datetime = legacy_column("CreatedAt", DateTime, default_factory=datetime.now)
    updated_at: datetime = legacy_column("UpdatedAt", DateTime, default_factory=datetime.now)
