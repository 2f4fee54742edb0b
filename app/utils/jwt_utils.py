# app/utils/jwt_utils.py
# Token 由外部认证服务签发，这里只负责解码与校验；create_access_token 保留给测试与运维脚本使用

from datetime import datetime, timedelta, UTC
from typing import Literal, Optional, Tuple
import uuid

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError, PyJWTError

from app.config.settings import settings
from app.core.exceptions import TokenExpiredException, InvalidTokenException, TokenTypeMismatchException

ALGORITHM = settings.security_settings.jwt_algorithm or "HS256"
ISSUER = settings.security_settings.jwt_issuer or None
AUDIENCE = settings.security_settings.jwt_audience or None


# =====================
# Token 生成
# =====================

def create_token(
    data: dict,
    expires_delta: timedelta,
    token_type: Literal["access", "refresh"] = "access",
) -> Tuple[str, timedelta, str]:
    """
    返回 (token, expires_delta, jti)
    """
    now = datetime.now(UTC)
    jti = str(uuid.uuid4())
    to_encode = {
        **data,
        "exp": now + expires_delta,
        "iat": now,
        "nbf": now,
        "jti": jti,
        "type": token_type,
    }
    if ISSUER:
        to_encode["iss"] = ISSUER
    if AUDIENCE:
        to_encode["aud"] = AUDIENCE

    encoded = jwt.encode(to_encode, settings.security_settings.secret, algorithm=ALGORITHM)
    return encoded, expires_delta, jti


def create_access_token(principal_id: int, extra: Optional[dict] = None) -> str:
    delta = timedelta(minutes=settings.security_settings.token_expire_minutes)
    token, _, _ = create_token({"sub": str(principal_id), **(extra or {})}, delta, "access")
    return token


# =====================
# Token 解码
# =====================

def decode_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.security_settings.secret,
            algorithms=[ALGORITHM],
            issuer=ISSUER,
            audience=AUDIENCE,
            options={"verify_aud": AUDIENCE is not None},
        )
    except ExpiredSignatureError:
        raise TokenExpiredException()
    except InvalidTokenError as e:
        raise InvalidTokenException(message=str(e))
    except PyJWTError as e:
        raise InvalidTokenException(message=str(e))


def validate_token_type(payload: dict, expected: str):
    # 老版本 App 签发的 token 没有 type 字段，视为 access
    token_type = payload.get("type", "access")
    if token_type != expected:
        raise TokenTypeMismatchException(message=f"Expected {expected} token, got {token_type}")
