from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from app.api.router import api_router
from app.config.common_settings.directories import AppDirectories
from app.config.settings import settings
from app.core.exceptions import BaseBusinessException
from app.core.logger import logger, setup_file_logging
from app.core.response_codes import ResponseCodeEnum
from app.core.security.middleware import AuditMiddleware
from app.infra.db.session import create_db_and_tables
from app.infra.redis.redis_factory import redis_factory


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 应用启动中，正在初始化资源...")

    AppDirectories(settings).ensure_directories()
    setup_file_logging(settings.logging)

    # 初始化数据库
    await create_db_and_tables()

    # 只有分片会话使用 redis 后端时才需要连接 Redis
    use_redis = settings.upload.session_backend == "redis"
    if use_redis:
        await redis_factory.init_clients(settings.redis, names=[settings.upload.redis_client])
    logger.info("✅ 所有资源初始化完成")

    yield

    if use_redis:
        await redis_factory.close_clients()
    logger.info("🛑 应用已关闭")


app = FastAPI(title="CMO Field Backend", lifespan=lifespan)


@app.exception_handler(BaseBusinessException)
async def business_exception_handler(request: Request, exc: BaseBusinessException):
    logger.warning(f"Business Exception | code: {exc.code}, message: {exc.message}, path: {request.url.path}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "code": exc.code,
            "message": exc.message,
            "data": exc.extra or None,
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # 请求体 / 查询参数格式错误与业务校验失败统一为 400
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    logger.warning(f"Request Validation Error | path: {request.url.path}, errors: {errors}")
    return JSONResponse(
        status_code=400,
        content={
            "code": ResponseCodeEnum.VALIDATION_ERROR.code,
            "message": ResponseCodeEnum.VALIDATION_ERROR.message,
            "data": errors,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled Exception | {repr(exc)} | path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "code": ResponseCodeEnum.SERVER_ERROR.code,
            "message": ResponseCodeEnum.SERVER_ERROR.message,
            "data": None,
        },
    )


origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AuditMiddleware)
app.include_router(api_router, prefix=settings.server.api_prefix)
