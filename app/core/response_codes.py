from enum import Enum


class ResponseCodeEnum(Enum):

    # === 通用响应码 ===
    SUCCESS = (0, "请求成功")
    CREATED = (201, "资源创建成功")
    VALIDATION_ERROR = (40001, "参数验证失败")
    AUTH_ERROR = (40100, "认证失败")
    FORBIDDEN = (40300, "没有权限")
    NOT_FOUND = (40400, "资源不存在")
    SERVER_ERROR = (50000, "服务器内部错误")

    # === Token ===
    TOKEN_EXPIRED = (40104, "Token 已过期")
    TOKEN_INVALID = (40105, "无效 Token")
    TOKEN_TYPE_MISMATCH = (40107, "Token 类型不匹配")

    # === APK 上传 / 版本 ===
    INCOMPLETE_UPLOAD = (40021, "分片尚未全部上传")
    INVALID_STATE = (40901, "上传会话状态不允许该操作")
    VERSION_CONFLICT = (40902, "版本号冲突")

    def __init__(self, code: int, message: str):
        self._code = code
        self._message = message

    @property
    def code(self):
        return self._code

    @property
    def message(self):
        return self._message
