# app/core/exceptions/__init__.py

from .base_exception import (
    BaseBusinessException,
    ValidationException,
    NotFoundException,
)
from .upload_exceptions import (
    InvalidStateException,
    IncompleteUploadException,
    VersionConflictException,
)
from .jwt_exceptions import (
    UnauthorizedException,
    TokenExpiredException,
    InvalidTokenException,
    TokenTypeMismatchException,
)

__all__ = [
    "BaseBusinessException",
    "ValidationException",
    "NotFoundException",

    "InvalidStateException",
    "IncompleteUploadException",
    "VersionConflictException",

    "UnauthorizedException",
    "TokenExpiredException",
    "InvalidTokenException",
    "TokenTypeMismatchException",
]
