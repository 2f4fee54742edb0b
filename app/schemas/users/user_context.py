# 专门用于接口上下文中注入当前调用者 (principal) 的身份信息
from typing import List, Optional

from pydantic import BaseModel, Field


class UserContext(BaseModel):
    id: int = Field(..., description="调用者的 SecurityId，写入 CreateBy / UpdateBy / UploadedBy")
    username: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
