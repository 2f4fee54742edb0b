# app/services/app_version/chunk_upload_service.py
import re
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from app.config.config_settings.config_schema import UploadConfig
from app.core.exceptions import (
    IncompleteUploadException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from app.enums.upload_enums import UploadStatus
from app.infra.db.repository_factory_auto import RepositoryFactory
from app.infra.storage.local_storage import LocalFileStorage, local_storage
from app.infra.storage.session_store import SessionStore
from app.models.app_version.app_version import AppVersion
from app.schemas.app_version.chunk_upload_schemas import (
    ChunkReceivedResult,
    ChunkUploadStatus,
    StaleSessionCleanupResult,
    UploadSession,
)
from app.services._base_service import BaseService
from app.services.app_version.app_version_service import AppVersionService

_UPLOAD_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class ChunkUploadService(BaseService):
    """
    分片上传 APK：init -> 任意顺序上传分片 (可重传) -> complete。

    - 分片字节落在 <chunk_dir>/<upload_id>/chunk_<index>，同一 index 后写覆盖先写。
    - 会话元数据由注入的 SessionStore 保存。
    - complete 按 0..n-1 顺序合并到 temp_dir，再交给 AppVersionService.register_version。
      登记成功后才删除分片；失败时只删除合并产物，分片保留，客户端可直接重试 complete。
    """

    def __init__(
            self,
            factory: RepositoryFactory,
            session_store: SessionStore,
            storage: LocalFileStorage = local_storage,
            upload_config: Optional[UploadConfig] = None,
            version_service: Optional[AppVersionService] = None,
    ):
        super().__init__()
        self.upload_config = upload_config or self.settings.upload
        self.session_store = session_store
        self.storage = storage
        self.version_service = version_service or AppVersionService(
            factory, storage=storage, upload_config=self.upload_config
        )

    # ==========================
    # 内部辅助方法
    # ==========================

    def _session_dir(self, upload_id: str) -> Path:
        return Path(self.upload_config.chunk_dir) / upload_id

    def _chunk_path(self, upload_id: str, chunk_index: int) -> Path:
        return self._session_dir(upload_id) / f"chunk_{chunk_index}"

    def _assembled_path(self, upload_id: str) -> Path:
        return Path(self.upload_config.temp_dir) / f"assembled_{upload_id}.apk"

    async def _get_session(self, upload_id: str) -> UploadSession:
        # upload_id 会拼进磁盘路径，格式不对直接当作不存在
        if not upload_id or not _UPLOAD_ID_PATTERN.match(upload_id):
            raise NotFoundException("Upload session not found")
        session = await self.session_store.get(upload_id)
        if session is None:
            raise NotFoundException("Upload session not found")
        return session

    async def _drop_session(self, upload_id: str) -> None:
        await self.storage.delete_dir(self._session_dir(upload_id))
        await self.session_store.delete(upload_id)

    def _completion_running(self, session: UploadSession) -> bool:
        if session.status != UploadStatus.COMPLETING or not session.completing_since:
            return False
        timeout = timedelta(seconds=self.upload_config.assembly_timeout_seconds)
        return datetime.now() - session.completing_since < timeout

    async def _restore_uploading(self, session: UploadSession) -> None:
        session.status = UploadStatus.UPLOADING
        session.completing_since = None
        session.updated_at = datetime.now()
        try:
            # 会话已被删除时不再复活一个没有分片的空壳
            if await self.session_store.get(session.upload_id) is None:
                self.logger.warning(f"Upload session {session.upload_id} vanished during completion, not restoring")
                return
            await self.session_store.put(session)
        except Exception as e:
            self.logger.error(f"Failed to restore upload session {session.upload_id}: {e}")

    # ==========================
    # 公共接口
    # ==========================

    async def init_upload(
            self,
            file_name: str,
            declared_file_size: int,
            total_chunks: int,
            version_code: int,
            version_name: str,
            release_notes: Optional[str],
            is_mandatory: bool,
            uploaded_by: Optional[int] = None,
    ) -> UploadSession:
        if not file_name or not file_name.strip():
            raise ValidationException("fileName is required")
        if not declared_file_size or declared_file_size <= 0:
            raise ValidationException("fileSize must be a positive integer")
        if not total_chunks or total_chunks <= 0:
            raise ValidationException("totalChunks must be a positive integer")
        if total_chunks > self.upload_config.max_total_chunks:
            raise ValidationException(
                f"totalChunks must not exceed {self.upload_config.max_total_chunks}"
            )
        if not version_code or version_code <= 0:
            raise ValidationException("versionCode must be a positive integer")
        if not version_name or not version_name.strip():
            raise ValidationException("versionName is required")

        session = UploadSession(
            upload_id=uuid.uuid4().hex,
            file_name=file_name.strip(),
            declared_file_size=declared_file_size,
            total_chunks=total_chunks,
            version_code=version_code,
            version_name=version_name.strip(),
            release_notes=release_notes or "",
            is_mandatory=bool(is_mandatory),
            uploaded_by=uploaded_by,
        )
        await self.session_store.put(session)

        self.logger.info(
            f"Upload session {session.upload_id} started: {session.file_name}, "
            f"{total_chunks} chunks, version {version_name} ({version_code})"
        )
        return session

    async def upload_chunk(self, upload_id: str, chunk_index: int, data: bytes) -> ChunkReceivedResult:
        session = await self._get_session(upload_id)
        if session.status == UploadStatus.COMPLETING:
            raise InvalidStateException("Upload is being completed, no more chunks accepted")
        if not data:
            raise ValidationException("Chunk is empty")
        if len(data) > self.upload_config.max_chunk_size:
            raise ValidationException(
                f"Chunk exceeds the maximum size of {self.upload_config.max_chunk_size} bytes"
            )
        if chunk_index is None or not 0 <= chunk_index < session.total_chunks:
            raise ValidationException(
                f"chunkIndex must be between 0 and {session.total_chunks - 1}"
            )

        # 先落盘再登记：登记过的 index 一定有对应的字节
        await self.storage.write_bytes(self._chunk_path(upload_id, chunk_index), data)
        try:
            received_count = await self.session_store.add_received_chunk(upload_id, chunk_index)
        except KeyError:
            raise NotFoundException("Upload session not found")

        self.logger.debug(f"Upload {upload_id}: chunk {chunk_index} stored ({received_count}/{session.total_chunks})")
        return ChunkReceivedResult(
            upload_id=upload_id,
            chunk_index=chunk_index,
            received_count=received_count,
            total_chunks=session.total_chunks,
        )

    async def get_upload_status(self, upload_id: str) -> ChunkUploadStatus:
        session = await self._get_session(upload_id)
        received = sorted(session.received_chunks)
        return ChunkUploadStatus(
            upload_id=upload_id,
            status=session.status,
            received_chunks=received,
            missing_chunks=session.missing_chunks(),
            received_count=len(received),
            total_chunks=session.total_chunks,
            progress_percent=round(len(received) / session.total_chunks * 100, 2),
        )

    async def complete_upload(self, upload_id: str, principal_id: Optional[int]) -> AppVersion:
        session = await self._get_session(upload_id)
        timeout = self.upload_config.assembly_timeout_seconds

        if self._completion_running(session):
            raise InvalidStateException("Upload is already being completed")
        if not session.is_complete():
            raise IncompleteUploadException(
                expected=session.total_chunks,
                received=session.received_count,
                missing=session.missing_chunks(),
            )

        try:
            claimed = await self.session_store.begin_completion(upload_id, timeout)
        except KeyError:
            raise NotFoundException("Upload session not found")
        if claimed is None:
            raise InvalidStateException("Upload is already being completed")
        if session.status == UploadStatus.COMPLETING:
            self.logger.warning(f"Upload {upload_id}: taking over a stale completion")

        assembled_path = self._assembled_path(upload_id)
        try:
            parts = [self._chunk_path(upload_id, i) for i in range(claimed.total_chunks)]
            actual_size = await self.storage.concat(parts, assembled_path)
            if actual_size != claimed.declared_file_size:
                self.logger.warning(
                    f"Upload {upload_id}: declared {claimed.declared_file_size} bytes, assembled {actual_size}"
                )

            version = await self.version_service.register_version(
                assembled_path,
                version_code=claimed.version_code,
                version_name=claimed.version_name,
                release_notes=claimed.release_notes,
                is_mandatory=claimed.is_mandatory,
                uploaded_by=principal_id,
            )
        except Exception:
            await self.storage.discard(assembled_path)
            await self._restore_uploading(claimed)
            raise

        try:
            await self._drop_session(upload_id)
        except OSError as e:
            # 版本已登记成功，残留分片交给过期清理
            self.logger.error(f"Upload {upload_id}: failed to clean chunk state: {e}")

        self.logger.info(f"Upload {upload_id} completed as version {version.version_name} (id={version.id})")
        return version

    async def abort_upload(self, upload_id: str) -> None:
        session = await self._get_session(upload_id)
        # 组装中的会话不能删，过期的 completing 标记视为已放弃
        if self._completion_running(session):
            raise InvalidStateException("Upload is being completed and cannot be aborted")
        await self._drop_session(upload_id)
        self.logger.info(f"Upload {upload_id} aborted")

    async def cleanup_stale_sessions(self, max_age_hours: float) -> StaleSessionCleanupResult:
        """
        删除 updated_at 早于 now - max_age_hours 的会话 (分片 + 元数据)。
        只在显式调用时执行，不会自动触发。
        """
        if max_age_hours is None or max_age_hours <= 0:
            raise ValidationException("max_age_hours must be positive")

        cutoff = datetime.now() - timedelta(hours=max_age_hours)
        removed = []
        for upload_id in await self.session_store.list_ids():
            session = await self.session_store.get(upload_id)
            if session is None or session.updated_at >= cutoff:
                continue
            await self._drop_session(upload_id)
            removed.append(upload_id)

        if removed:
            self.logger.info(f"Removed {len(removed)} stale upload sessions older than {max_age_hours}h")
        return StaleSessionCleanupResult(removed=len(removed), upload_ids=removed)
