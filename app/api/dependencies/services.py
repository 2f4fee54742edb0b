# app/api/dependencies/services.py
from functools import lru_cache

from fastapi import Depends

from app.config.settings import settings
from app.infra.db.get_repo_factory import get_repository_factory
from app.infra.db.repository_factory_auto import RepositoryFactory
from app.infra.redis.base_redis_client import BaseRedisClient
from app.infra.redis.redis_factory import redis_factory
from app.infra.storage.local_storage import local_storage
from app.infra.storage.session_store import FileSystemSessionStore, RedisSessionStore, SessionStore
from app.services.app_version.app_version_service import AppVersionService
from app.services.app_version.chunk_upload_service import ChunkUploadService
from app.services.meter.bulk_cmo_service import BulkCmoService


@lru_cache
def get_session_store() -> SessionStore:
    """
    进程内单例：文件存储的 per-upload 锁必须在所有请求之间共享。
    """
    upload_cfg = settings.upload
    if upload_cfg.session_backend == "redis":
        client_name = upload_cfg.redis_client
        serializer = settings.redis.clients[client_name].serializer
        client = BaseRedisClient(redis_factory.get_client(client_name), serializer=serializer)
        return RedisSessionStore(client, ttl_seconds=upload_cfg.session_ttl_seconds)
    return FileSystemSessionStore(upload_cfg.chunk_dir, local_storage)


def get_app_version_service(
    repo_factory: RepositoryFactory = Depends(get_repository_factory),
) -> AppVersionService:
    return AppVersionService(repo_factory)


def get_chunk_upload_service(
    repo_factory: RepositoryFactory = Depends(get_repository_factory),
    session_store: SessionStore = Depends(get_session_store),
) -> ChunkUploadService:
    return ChunkUploadService(repo_factory, session_store=session_store)


def get_bulk_cmo_service(
    repo_factory: RepositoryFactory = Depends(get_repository_factory),
) -> BulkCmoService:
    return BulkCmoService(repo_factory)
