# app/infra/storage/session_store.py
import asyncio
import json
import weakref
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from app.core.logger import get_logger
from app.enums.upload_enums import UploadStatus
from app.infra.redis.base_redis_client import BaseRedisClient
from app.infra.storage.local_storage import LocalFileStorage
from app.schemas.app_version.chunk_upload_schemas import UploadSession

logger = get_logger("SessionStore")


class SessionStore(ABC):
    """
    分片上传会话的键值存储，按 upload_id 存取。

    约定：
    - put 只写会话元数据，已接收分片集合由 add_received_chunk 独占维护，put 不会覆盖它。
    - add_received_chunk 是集合语义，同一 index 重复加入不改变数量。
    - 会话不存在时 add_received_chunk / begin_completion 抛 KeyError。
    """

    @abstractmethod
    async def get(self, upload_id: str) -> Optional[UploadSession]:
        ...

    @abstractmethod
    async def put(self, session: UploadSession) -> None:
        ...

    @abstractmethod
    async def delete(self, upload_id: str) -> None:
        ...

    @abstractmethod
    async def add_received_chunk(self, upload_id: str, chunk_index: int) -> int:
        """登记一个已落盘的分片，返回当前不重复的分片数量。"""
        ...

    @abstractmethod
    async def list_ids(self) -> List[str]:
        ...

    @abstractmethod
    async def begin_completion(self, upload_id: str, timeout_seconds: int) -> Optional[UploadSession]:
        """
        原子地把会话切换到 completing 并返回最新会话。
        会话已在 completing 且未超过 timeout_seconds 时返回 None；超时视为上次合并中断，允许接管。
        """
        ...


def _dump_meta(session: UploadSession) -> dict:
    return session.model_dump(mode="json", exclude={"received_chunks"})


def _completion_in_progress(session: UploadSession, now: datetime, timeout_seconds: int) -> bool:
    if session.status != UploadStatus.COMPLETING:
        return False
    if session.completing_since is None:
        return True
    return now - session.completing_since < timedelta(seconds=timeout_seconds)


class FileSystemSessionStore(SessionStore):
    """
    每个会话一个 <chunk_dir>/<upload_id>/metadata.json，和分片文件放在同一目录，进程重启后仍可恢复。
    同一 upload_id 的读改写在进程内由 asyncio.Lock 串行化；多进程部署请使用 RedisSessionStore。
    """
    METADATA_FILE = "metadata.json"

    def __init__(self, root_dir: str, storage: LocalFileStorage):
        self.root_dir = Path(root_dir)
        self.storage = storage
        # 锁只在有协程持有时存活，放弃的会话不会在这里留下条目
        self._locks = weakref.WeakValueDictionary()

    def _lock_for(self, upload_id: str) -> asyncio.Lock:
        return self._locks.setdefault(upload_id, asyncio.Lock())

    def _meta_path(self, upload_id: str) -> Path:
        return self.root_dir / upload_id / self.METADATA_FILE

    async def _read_raw(self, upload_id: str) -> Optional[dict]:
        raw = await self.storage.read_bytes_if_exists(self._meta_path(upload_id))
        if raw is None:
            return None
        return json.loads(raw)

    async def _write_raw(self, upload_id: str, data: dict) -> None:
        await self.storage.write_bytes(
            self._meta_path(upload_id), json.dumps(data, ensure_ascii=False).encode("utf-8")
        )

    async def get(self, upload_id: str) -> Optional[UploadSession]:
        data = await self._read_raw(upload_id)
        if data is None:
            return None
        return UploadSession.model_validate(data)

    async def put(self, session: UploadSession) -> None:
        async with self._lock_for(session.upload_id):
            existing = await self._read_raw(session.upload_id)
            data = _dump_meta(session)
            data["received_chunks"] = existing.get("received_chunks", []) if existing else []
            await self._write_raw(session.upload_id, data)

    async def delete(self, upload_id: str) -> None:
        async with self._lock_for(upload_id):
            await self.storage.delete_file(self._meta_path(upload_id))

    async def add_received_chunk(self, upload_id: str, chunk_index: int) -> int:
        async with self._lock_for(upload_id):
            data = await self._read_raw(upload_id)
            if data is None:
                raise KeyError(upload_id)
            received = set(data.get("received_chunks", []))
            received.add(chunk_index)
            data["received_chunks"] = sorted(received)
            data["updated_at"] = datetime.now().isoformat()
            await self._write_raw(upload_id, data)
            return len(received)

    async def begin_completion(self, upload_id: str, timeout_seconds: int) -> Optional[UploadSession]:
        async with self._lock_for(upload_id):
            data = await self._read_raw(upload_id)
            if data is None:
                raise KeyError(upload_id)
            session = UploadSession.model_validate(data)
            now = datetime.now()
            if _completion_in_progress(session, now, timeout_seconds):
                return None

            session.status = UploadStatus.COMPLETING
            session.completing_since = now
            session.updated_at = now
            data.update(_dump_meta(session))
            await self._write_raw(upload_id, data)
            return session

    async def list_ids(self) -> List[str]:
        dirs = await self.storage.list_dirs(self.root_dir)
        ids = []
        for directory in dirs:
            if await self.storage.exists(directory / self.METADATA_FILE):
                ids.append(directory.name)
        return ids


class RedisSessionStore(SessionStore):
    """
    Redis 后端，适合多 worker 部署：
    - <prefix>:<id>:meta       会话元数据 (JSON)
    - <prefix>:<id>:chunks     已接收分片 (SET，SADD 原子，并发上传不会丢 index)
    - <prefix>:<id>:touched    最近一次分片到达时间，供过期清理使用
    - <prefix>:<id>:completing 合并锁 (SET NX EX)，过期即允许接管
    - <prefix>:sessions        所有会话 id 的索引
    """

    def __init__(self, client: BaseRedisClient, ttl_seconds: Optional[int] = None, prefix: str = "cmo:upload"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, upload_id: str, part: str) -> str:
        return f"{self.prefix}:{upload_id}:{part}"

    @property
    def _index_key(self) -> str:
        return f"{self.prefix}:sessions"

    async def _refresh_ttl(self, upload_id: str) -> None:
        if self.ttl_seconds:
            for part in ("meta", "chunks", "touched"):
                await self.client.expire(self._key(upload_id, part), self.ttl_seconds)

    async def _write_meta(self, session: UploadSession) -> None:
        await self.client.set_obj(self._key(session.upload_id, "meta"), _dump_meta(session), ex=self.ttl_seconds)

    async def get(self, upload_id: str) -> Optional[UploadSession]:
        data = await self.client.get_obj(self._key(upload_id, "meta"))
        if data is None:
            return None
        members = await self.client.smembers(self._key(upload_id, "chunks"))
        data["received_chunks"] = sorted(int(m) for m in members)
        touched = await self.client.get_obj(self._key(upload_id, "touched"))
        if touched and touched > data.get("updated_at", ""):
            data["updated_at"] = touched
        return UploadSession.model_validate(data)

    async def put(self, session: UploadSession) -> None:
        await self._write_meta(session)
        await self.client.sadd(self._index_key, session.upload_id)
        if session.status == UploadStatus.UPLOADING:
            await self.client.release_lock(self._key(session.upload_id, "completing"))
        await self._refresh_ttl(session.upload_id)

    async def delete(self, upload_id: str) -> None:
        await self.client.delete(*(self._key(upload_id, part) for part in ("meta", "chunks", "touched", "completing")))
        await self.client.srem(self._index_key, upload_id)

    async def add_received_chunk(self, upload_id: str, chunk_index: int) -> int:
        if not await self.client.exists(self._key(upload_id, "meta")):
            raise KeyError(upload_id)
        await self.client.sadd(self._key(upload_id, "chunks"), chunk_index)
        await self.client.set_obj(self._key(upload_id, "touched"), datetime.now().isoformat(), ex=self.ttl_seconds)
        await self._refresh_ttl(upload_id)
        return await self.client.scard(self._key(upload_id, "chunks"))

    async def begin_completion(self, upload_id: str, timeout_seconds: int) -> Optional[UploadSession]:
        lock_key = self._key(upload_id, "completing")
        if not await self.client.acquire_lock(lock_key, timeout=timeout_seconds):
            return None

        session = await self.get(upload_id)
        if session is None:
            await self.client.release_lock(lock_key)
            raise KeyError(upload_id)

        now = datetime.now()
        session.status = UploadStatus.COMPLETING
        session.completing_since = now
        session.updated_at = now
        await self._write_meta(session)
        return session

    async def list_ids(self) -> List[str]:
        members = await self.client.smembers(self._index_key)
        ids = []
        for member in members:
            upload_id = member.decode() if isinstance(member, bytes) else str(member)
            if await self.client.exists(self._key(upload_id, "meta")):
                ids.append(upload_id)
            else:
                # 元数据已过期，顺手清掉索引
                await self.client.srem(self._index_key, upload_id)
        return ids
