# app/core/request_scope.py
# 每个请求独立的上下文 (request_id、principal_id 等)，供日志与 RepositoryFactory 读取
import contextvars
from typing import Any

request_scope: contextvars.ContextVar[dict] = contextvars.ContextVar("request_scope")


def set_request_scope(scope: dict) -> contextvars.Token:
    return request_scope.set(scope)


def reset_request_scope(token: contextvars.Token) -> None:
    request_scope.reset(token)


def get_request_scope() -> dict:
    return request_scope.get({})


def update_request_scope(**values: Any) -> None:
    """
    在已有的请求上下文上追加字段，例如鉴权完成后写入 principal_id。
    原地修改同一个 dict，中间件所在的外层 context 才能看到。
    """
    scope = request_scope.get(None)
    if scope is None:
        request_scope.set(dict(values))
        return
    scope.update(values)
