from typing import Any, Callable, Optional

from sqlalchemy import Column
from sqlmodel import Field


def legacy_column(
    column_name: str,
    column_type: Any,
    *,
    default: Any = None,
    default_factory: Optional[Callable[[], Any]] = None,
    description: Optional[str] = None,
    **column_kwargs: Any,
):
    """
    把 Python 侧的 snake_case 属性映射到外部 SQL Server 库中 PascalCase 的列名。
    表结构由另一套系统维护，列名、类型都必须原样保留。
    """
    if default_factory is not None:
        return Field(
            default_factory=default_factory,
            description=description,
            sa_column=Column(column_name, column_type, **column_kwargs),
        )
    return Field(
        default=default,
        description=description,
        sa_column=Column(column_name, column_type, **column_kwargs),
    )
