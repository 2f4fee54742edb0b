from datetime import datetime
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

from app.enums.upload_enums import UploadStatus


class UploadSession(BaseModel):
    """
    一次进行中的分片上传的全部记账信息。
    只在 SessionStore 中持久化，合并成功后删除。
    """
    upload_id: str
    file_name: str
    declared_file_size: int = Field(..., description="客户端声明的总大小，仅作参考，不写入版本记录")
    total_chunks: int
    version_code: int
    version_name: str
    release_notes: str = ""
    is_mandatory: bool = False

    received_chunks: Set[int] = Field(default_factory=set)
    status: UploadStatus = UploadStatus.UPLOADING
    uploaded_by: Optional[int] = None

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completing_since: Optional[datetime] = None

    @property
    def received_count(self) -> int:
        return len(self.received_chunks)

    def missing_chunks(self) -> List[int]:
        return [i for i in range(self.total_chunks) if i not in self.received_chunks]

    def is_complete(self) -> bool:
        return self.received_chunks == set(range(self.total_chunks))


# ==========================
# 请求体
# ==========================

class ChunkUploadInitPayload(BaseModel):
    """
    分片上传初始化请求。
    键名兼容移动端的 camelCase (fileName / totalChunks ...)。
    """
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName")
    file_size: int = Field(..., alias="fileSize")
    total_chunks: int = Field(..., alias="totalChunks")
    version_code: int = Field(..., alias="versionCode")
    version_name: str = Field(..., alias="versionName")
    release_notes: str = Field("", alias="releaseNotes")
    is_mandatory: bool = Field(False, alias="isMandatory")


# ==========================
# 响应体
# ==========================

class ChunkUploadInitResult(BaseModel):
    upload_id: str
    total_chunks: int
    max_chunk_size: int


class ChunkReceivedResult(BaseModel):
    upload_id: str
    chunk_index: int
    received_count: int
    total_chunks: int


class ChunkUploadStatus(BaseModel):
    upload_id: str
    status: UploadStatus
    received_chunks: List[int]
    missing_chunks: List[int]
    received_count: int
    total_chunks: int
    progress_percent: float


class StaleSessionCleanupResult(BaseModel):
    removed: int
    upload_ids: List[str] = Field(default_factory=list)
