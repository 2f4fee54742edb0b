# app/enums/upload_enums.py
from enum import Enum


class UploadStatus(str, Enum):
    """
    分片上传会话的状态。
    继承 (str, Enum)，元数据 JSON 中直接保存字符串值。
    """
    UPLOADING = "uploading"
    COMPLETING = "completing"


class SyncRecordStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
