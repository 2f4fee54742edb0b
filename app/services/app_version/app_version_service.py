# app/services/app_version/app_version_service.py
import math
import os
import re
import time
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError

from app.config.config_settings.config_schema import UploadConfig
from app.core.exceptions import NotFoundException, ValidationException, VersionConflictException
from app.infra.db.repository_factory_auto import RepositoryFactory
from app.infra.storage.local_storage import LocalFileStorage, local_storage
from app.models.app_version.app_version import AppVersion
from app.repo.crud.app_version.app_version_repo import AppVersionRepository
from app.schemas.app_version.app_version_schemas import (
    AppVersionRead,
    AppVersionUpdatePayload,
    CheckUpdateResult,
    LatestVersionInfo,
)
from app.services._base_service import BaseService

APK_EXTENSION = ".apk"
APK_MIME_TYPE = "application/vnd.android.package-archive"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def build_apk_file_name(version_name: str, epoch_ms: Optional[int] = None) -> str:
    """cmo_app_v<version_name>_<epoch_ms>.apk，版本名中的非法字符替换为 '_'。"""
    safe_name = _UNSAFE_NAME_CHARS.sub("_", version_name.strip())
    epoch_ms = epoch_ms if epoch_ms is not None else int(time.time() * 1000)
    return f"cmo_app_v{safe_name}_{epoch_ms}{APK_EXTENSION}"


def format_file_size(size_bytes: Optional[int]) -> str:
    """1024 进制，保留两位小数并去掉多余的 0：0 Bytes / 512 Bytes / 1.5 KB / 12.34 MB。"""
    if not size_bytes:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    exponent = min(int(math.floor(math.log(size_bytes, 1024))), len(units) - 1)
    value = round(size_bytes / math.pow(1024, exponent), 2)
    return f"{value:g} {units[exponent]}"


class AppVersionService(BaseService):
    """
    APK 版本的登记与分发。

    登记 (register_version) 同时被整包上传和分片合并使用：
    先校验版本号，再把产物移入正式目录，最后插入记录并提交。
    文件系统和数据库之间没有两阶段提交，移动之后任何一步失败都会尽力删除已移动的文件。
    """

    def __init__(
            self,
            factory: RepositoryFactory,
            storage: LocalFileStorage = local_storage,
            upload_config: Optional[UploadConfig] = None,
    ):
        super().__init__()
        self.factory = factory
        self.version_repo: AppVersionRepository = factory.get_repo_by_type(AppVersionRepository)
        self.storage = storage
        self.upload_config = upload_config or self.settings.upload

    # ==========================
    # 内部辅助方法
    # ==========================

    def _public_path(self, file_name: str) -> str:
        return f"{self.upload_config.apk_public_prefix.rstrip('/')}/{file_name}"

    def _disk_path(self, version: AppVersion) -> Path:
        return Path(self.upload_config.apk_dir) / version.file_name

    def _to_read(self, version: AppVersion) -> AppVersionRead:
        read = AppVersionRead.model_validate(version)
        read.file_size_display = format_file_size(version.file_size)
        return read

    @staticmethod
    def _validate_version_fields(version_code: int, version_name: str) -> None:
        if version_code is None or version_code <= 0:
            raise ValidationException("versionCode must be a positive integer")
        if not version_name or not version_name.strip():
            raise ValidationException("versionName is required")

    # ==========================
    # 登记
    # ==========================

    async def register_version(
            self,
            artifact_path: Path,
            version_code: int,
            version_name: str,
            release_notes: Optional[str],
            is_mandatory: bool,
            uploaded_by: Optional[int],
    ) -> AppVersion:
        self._validate_version_fields(version_code, version_name)

        latest = await self.version_repo.get_latest_active()
        if latest and version_code <= latest.version_code:
            raise VersionConflictException(minimum=latest.version_code)

        file_name = build_apk_file_name(version_name)
        final_path = Path(self.upload_config.apk_dir) / file_name
        await self.storage.move(artifact_path, final_path)

        try:
            file_size = await self.storage.size(final_path)
            async with self.version_repo.db.begin_nested():
                version = await self.version_repo.create({
                    "version_code": version_code,
                    "version_name": version_name.strip(),
                    "file_name": file_name,
                    "file_path": self._public_path(file_name),
                    "file_size": file_size,
                    "release_notes": release_notes or "",
                    "is_mandatory": 1 if is_mandatory else 0,
                    "is_active": 1,
                    "download_count": 0,
                    "uploaded_by": uploaded_by,
                })
            await self.factory.commit()
        except IntegrityError as e:
            # 并发登记时两边都通过了上面的检查，唯一约束让后到的一方失败
            await self.factory.rollback()
            await self.storage.discard(final_path)
            self.logger.warning(f"VersionCode {version_code} lost a concurrent registration: {e.orig}")
            raise VersionConflictException(
                minimum=version_code - 1,
                message=f"Version code {version_code} already exists",
            ) from e
        except Exception:
            await self.factory.rollback()
            await self.storage.discard(final_path)
            raise

        self.logger.info(
            f"Registered version {version.version_name} (code={version.version_code}, "
            f"size={format_file_size(version.file_size)}) by {uploaded_by}"
        )
        return version

    async def upload_version(
            self,
            file: UploadFile,
            version_code: int,
            version_name: str,
            release_notes: Optional[str],
            is_mandatory: bool,
            uploaded_by: Optional[int],
    ) -> AppVersion:
        """整包上传：只接受 .apk，流式写入临时文件后交给 register_version。"""
        if not file or not file.filename:
            raise ValidationException("APK file is required")
        ext = os.path.splitext(file.filename)[-1].lower()
        if ext != APK_EXTENSION and file.content_type != APK_MIME_TYPE:
            raise ValidationException("Only APK files are allowed")
        self._validate_version_fields(version_code, version_name)

        temp_path = Path(self.upload_config.temp_dir) / f"upload_{uuid.uuid4().hex}{APK_EXTENSION}"
        try:
            await self.storage.write_stream(file.read, temp_path, self.upload_config.max_apk_size)
            return await self.register_version(
                temp_path, version_code, version_name, release_notes, is_mandatory, uploaded_by
            )
        finally:
            # 成功时临时文件已被移走，这里只会清理失败留下的残余
            await self.storage.discard(temp_path)

    # ==========================
    # 查询
    # ==========================

    async def list_versions(self, include_inactive: bool = False) -> List[AppVersionRead]:
        versions = await self.version_repo.list_versions(include_inactive=include_inactive)
        return [self._to_read(v) for v in versions]

    async def get_latest_version(self) -> Optional[AppVersionRead]:
        latest = await self.version_repo.get_latest_active()
        return self._to_read(latest) if latest else None

    async def get_version(self, version_id: int) -> AppVersion:
        version = await self.version_repo.get_by_id(version_id)
        if not version:
            raise NotFoundException("Version not found")
        return version

    async def check_for_update(self, current_version_code: int) -> CheckUpdateResult:
        latest = await self.version_repo.get_latest_active()
        if not latest or latest.version_code <= current_version_code:
            return CheckUpdateResult(update_available=False, current_version=current_version_code)

        return CheckUpdateResult(
            update_available=True,
            current_version=current_version_code,
            latest_version=LatestVersionInfo(
                version_code=latest.version_code,
                version_name=latest.version_name,
                release_notes=latest.release_notes,
                is_mandatory=latest.is_mandatory == 1,
                download_url=latest.file_path,
                file_size=latest.file_size,
            ),
        )

    # ==========================
    # 修改
    # ==========================

    async def update_version(self, version_id: int, payload: AppVersionUpdatePayload) -> AppVersionRead:
        version = await self.get_version(version_id)
        update_data = payload.model_dump(exclude_unset=True, exclude_none=True)
        if not update_data:
            return self._to_read(version)

        for flag in ("is_mandatory", "is_active"):
            if flag in update_data:
                update_data[flag] = 1 if update_data[flag] else 0

        async with self.version_repo.db.begin_nested():
            version = await self.version_repo.update(version, update_data)
        return self._to_read(version)

    async def deactivate_version(self, version_id: int) -> AppVersionRead:
        return await self.update_version(version_id, AppVersionUpdatePayload(is_active=False))

    async def delete_version(self, version_id: int) -> None:
        version = await self.get_version(version_id)

        # 文件删除失败不阻止记录删除
        try:
            await self.storage.delete_file(self._disk_path(version))
        except OSError as e:
            self.logger.error(f"Error deleting file for version {version_id}: {e}")

        async with self.version_repo.db.begin_nested():
            await self.version_repo.delete(version)
        self.logger.info(f"Deleted version {version.version_name} (id={version_id})")

    async def increment_download_count(self, version_id: int) -> None:
        affected = await self.version_repo.increment_download_count(version_id)
        if not affected:
            raise NotFoundException("Version not found")

    # ==========================
    # 下载
    # ==========================

    async def download(self, version_id: int) -> Tuple[AppVersion, Path]:
        await self.increment_download_count(version_id)
        version = await self.get_version(version_id)
        path = self._disk_path(version)
        if not await self.storage.exists(path):
            raise NotFoundException("APK file not found")
        return version, path

    async def download_latest(self) -> Tuple[AppVersion, Path]:
        latest = await self.version_repo.get_latest_active()
        if not latest:
            raise NotFoundException("No version available")
        return await self.download(latest.id)
