# app/core/security/security.py
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.exceptions import InvalidTokenException, UnauthorizedException
from app.core.request_scope import update_request_scope
from app.schemas.users.user_context import UserContext
from app.utils.jwt_utils import decode_token, validate_token_type

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> UserContext:
    """
    从 Bearer token 中解析调用者身份。
    token 的签发、账号状态检查都在认证服务完成，这里只信任签名有效的 sub。
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException(message="Missing bearer token")

    payload = decode_token(credentials.credentials)
    validate_token_type(payload, expected="access")

    sub = payload.get("sub")
    if sub is None:
        raise InvalidTokenException(message="Token payload is missing user identifier (sub)")
    try:
        principal_id = int(sub)
    except (TypeError, ValueError):
        raise InvalidTokenException(message="Token subject must be a numeric security id")

    user_context = UserContext(
        id=principal_id,
        username=payload.get("username"),
        roles=payload.get("roles") or [],
    )
    update_request_scope(principal_id=principal_id)
    return user_context
