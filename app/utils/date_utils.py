# app/utils/date_utils.py
"""
外部 SQL Server 库里的日期列全部是 VARCHAR(50)，格式固定为
``YYYY-MM-DD HH:mm:ss.mmm`` (服务器本地时间，毫秒三位)。
所有写入 MeterInfo 的日期都必须经过 format_date_for_sql_server。
"""
from datetime import date, datetime
from typing import Any, Optional

SQL_SERVER_DATE_PREFIX_LEN = len("YYYY-MM-DD")

_FALLBACK_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_client_date(value: Any) -> Optional[datetime]:
    """
    解析移动端传来的日期，无法识别时返回 None。
    支持：datetime / date、毫秒时间戳 (int / float)、ISO 8601 字符串 (含 Z 或时区偏移)、
    以及几种常见的斜杠格式。带时区的值统一换算成服务器本地时间。
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _to_local_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _to_local_naive(datetime.fromisoformat(text))
    except ValueError:
        pass
    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def format_sql_server_datetime(value: datetime) -> str:
    return f"{value:%Y-%m-%d %H:%M:%S}.{value.microsecond // 1000:03d}"


def format_date_for_sql_server(value: Any = None) -> str:
    """缺失或无法解析的值按 "现在" 处理，不会抛异常。"""
    parsed = parse_client_date(value)
    return format_sql_server_datetime(parsed or datetime.now())


def today_date_prefix() -> str:
    """今天 00:00 对应的 'YYYY-MM-DD'，用于与 CreateDate 字符串做字典序比较。"""
    return format_date_for_sql_server(None)[:SQL_SERVER_DATE_PREFIX_LEN]
