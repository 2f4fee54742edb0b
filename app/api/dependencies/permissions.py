# app/api/dependencies/permissions.py

from fastapi import Depends

from app.core.security.security import get_current_user
from app.schemas.users.user_context import UserContext


def require_login(current_user: UserContext = Depends(get_current_user)) -> UserContext:
    """
    一个基础的依赖，仅确保调用者已登录。
    APK 发布、分片上传、批量同步都只要求登录，没有更细的角色要求。
    """
    return current_user
