# app/core/exceptions/base_exception.py

from typing import Optional

from app.core.response_codes import ResponseCodeEnum


class BaseBusinessException(Exception):
    def __init__(
            self,
            code_enum: Optional[ResponseCodeEnum] = None,
            code: Optional[int] = None,
            status_code: int = 400,
            message: Optional[str] = None,
            extra: Optional[dict] = None,
    ):
        code_enum = code_enum or ResponseCodeEnum.VALIDATION_ERROR
        self.code = code if code is not None else code_enum.code
        self.message = message or code_enum.message
        self.status_code = status_code
        self.extra = extra or {}
        super().__init__(self.message)

    def __str__(self):
        return f"[{self.code}] {self.message}"

    def to_dict(self):
        return {
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "extra": self.extra,
        }


class ValidationException(BaseBusinessException):
    """
    输入缺失、格式错误或超出上限时抛出。
    """
    def __init__(self, message: str = "参数验证失败", extra: Optional[dict] = None):
        super().__init__(ResponseCodeEnum.VALIDATION_ERROR, status_code=400, message=message, extra=extra)


class NotFoundException(BaseBusinessException):
    """
    当请求的资源（版本记录、上传会话、文件）不存在时抛出。
    """
    def __init__(self, message: str = "资源不存在"):
        super().__init__(ResponseCodeEnum.NOT_FOUND, status_code=404, message=message)
