from typing import List, Optional

from app.core.exceptions.base_exception import BaseBusinessException
from app.core.response_codes import ResponseCodeEnum


class InvalidStateException(BaseBusinessException):
    """上传会话处于不允许当前操作的阶段，例如正在合并时继续上传分片。"""
    def __init__(self, message: Optional[str] = None):
        super().__init__(ResponseCodeEnum.INVALID_STATE, status_code=409, message=message)


class IncompleteUploadException(BaseBusinessException):
    """
    分片未收齐就调用了 complete。
    extra 中带上 expected / received / missing，客户端据此补传。
    """
    def __init__(self, expected: int, received: int, missing: Optional[List[int]] = None):
        super().__init__(
            ResponseCodeEnum.INCOMPLETE_UPLOAD,
            status_code=400,
            message=f"Upload incomplete: expected {expected} chunks, received {received}",
            extra={"expected": expected, "received": received, "missing": missing or []},
        )
        self.expected = expected
        self.received = received


class VersionConflictException(BaseBusinessException):
    """版本号必须严格大于当前最新的启用版本。"""
    def __init__(self, minimum: Optional[int] = None, message: Optional[str] = None):
        if message is None and minimum is not None:
            message = f"Version code must be greater than {minimum}"
        super().__init__(
            ResponseCodeEnum.VERSION_CONFLICT,
            status_code=409,
            message=message,
            extra={"minimum_exclusive": minimum} if minimum is not None else None,
        )
        self.minimum = minimum
