import asyncio
import gc
from datetime import datetime, timedelta

import pytest

from app.enums.upload_enums import UploadStatus
from app.infra.redis.base_redis_client import BaseRedisClient
from app.infra.storage.local_storage import local_storage
from app.infra.storage.session_store import FileSystemSessionStore, RedisSessionStore
from app.schemas.app_version.chunk_upload_schemas import UploadSession


class InMemoryRedis:
    """
    只实现 RedisSessionStore 用到的命令，行为对齐 redis.asyncio：
    字符串值以 bytes 返回，SET 成员以 bytes 返回。
    """

    def __init__(self):
        self.values = {}
        self.sets = {}
        self.ttl = {}

    @staticmethod
    def _b(value) -> bytes:
        return value if isinstance(value, bytes) else str(value).encode()

    async def set(self, name, value, ex=None, nx=False):
        if nx and name in self.values:
            return None
        self.values[name] = self._b(value)
        if ex:
            self.ttl[name] = ex
        return True

    async def get(self, name):
        return self.values.get(name)

    async def delete(self, *names):
        removed = 0
        for name in names:
            removed += int(self.values.pop(name, None) is not None)
            removed += int(self.sets.pop(name, None) is not None)
        return removed

    async def exists(self, *names):
        return sum(1 for n in names if n in self.values or self.sets.get(n))

    async def expire(self, name, seconds):
        self.ttl[name] = seconds
        return name in self.values or name in self.sets

    async def sadd(self, name, *values):
        members = self.sets.setdefault(name, set())
        before = len(members)
        members.update(self._b(v) for v in values)
        return len(members) - before

    async def srem(self, name, *values):
        members = self.sets.get(name, set())
        before = len(members)
        members.difference_update(self._b(v) for v in values)
        return before - len(members)

    async def smembers(self, name):
        return set(self.sets.get(name, set()))

    async def scard(self, name):
        return len(self.sets.get(name, set()))


def _session(upload_id="a" * 32, total_chunks=3) -> UploadSession:
    return UploadSession(
        upload_id=upload_id,
        file_name="app.apk",
        declared_file_size=9,
        total_chunks=total_chunks,
        version_code=1,
        version_name="1.0",
    )


@pytest.fixture
def fs_store(tmp_path):
    return FileSystemSessionStore(str(tmp_path / "chunks"), local_storage)


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
def redis_store(fake_redis):
    return RedisSessionStore(BaseRedisClient(fake_redis), ttl_seconds=3600, prefix="test:upload")


@pytest.fixture(params=["file", "redis"])
def store(request, fs_store, redis_store):
    return fs_store if request.param == "file" else redis_store


async def test_put_and_get_round_trip(store):
    await store.put(_session())

    loaded = await store.get("a" * 32)
    assert loaded.file_name == "app.apk"
    assert loaded.received_chunks == set()
    assert loaded.status == UploadStatus.UPLOADING
    assert await store.get("b" * 32) is None


async def test_received_chunks_are_a_set(store):
    await store.put(_session())

    assert await store.add_received_chunk("a" * 32, 2) == 1
    assert await store.add_received_chunk("a" * 32, 2) == 1
    assert await store.add_received_chunk("a" * 32, 0) == 2

    loaded = await store.get("a" * 32)
    assert loaded.received_chunks == {0, 2}
    assert loaded.missing_chunks() == [1]


async def test_put_never_overwrites_received_chunks(store):
    session = _session()
    await store.put(session)
    await store.add_received_chunk(session.upload_id, 1)

    session.release_notes = "changed"
    await store.put(session)

    loaded = await store.get(session.upload_id)
    assert loaded.release_notes == "changed"
    assert loaded.received_chunks == {1}


async def test_concurrent_chunk_registration_loses_nothing(store):
    await store.put(_session(total_chunks=20))
    await asyncio.gather(*(store.add_received_chunk("a" * 32, i) for i in range(20)))

    loaded = await store.get("a" * 32)
    assert loaded.received_chunks == set(range(20))


async def test_missing_session_raises_key_error(store):
    with pytest.raises(KeyError):
        await store.add_received_chunk("c" * 32, 0)
    with pytest.raises(KeyError):
        await store.begin_completion("c" * 32, 600)


async def test_begin_completion_is_exclusive(store):
    await store.put(_session())

    first = await store.begin_completion("a" * 32, 600)
    second = await store.begin_completion("a" * 32, 600)

    assert first.status == UploadStatus.COMPLETING
    assert first.completing_since is not None
    assert second is None
    assert (await store.get("a" * 32)).status == UploadStatus.COMPLETING


async def test_restoring_uploading_allows_a_new_completion(store):
    await store.put(_session())
    claimed = await store.begin_completion("a" * 32, 600)

    claimed.status = UploadStatus.UPLOADING
    claimed.completing_since = None
    await store.put(claimed)

    assert await store.begin_completion("a" * 32, 600) is not None


async def test_delete_and_list_ids(store):
    await store.put(_session("a" * 32))
    await store.put(_session("b" * 32))
    await store.add_received_chunk("b" * 32, 0)

    assert sorted(await store.list_ids()) == ["a" * 32, "b" * 32]

    await store.delete("b" * 32)
    assert await store.list_ids() == ["a" * 32]
    assert await store.get("b" * 32) is None


async def test_file_store_takes_over_stale_completion(fs_store):
    await fs_store.put(_session())
    await fs_store.begin_completion("a" * 32, 600)

    assert await fs_store.begin_completion("a" * 32, 0) is not None


async def test_file_store_survives_a_new_instance(fs_store, tmp_path):
    await fs_store.put(_session())
    await fs_store.add_received_chunk("a" * 32, 1)

    reopened = FileSystemSessionStore(str(tmp_path / "chunks"), local_storage)
    loaded = await reopened.get("a" * 32)
    assert loaded.received_chunks == {1}


async def test_file_store_does_not_keep_locks_for_idle_sessions(fs_store):
    # 从未 delete 的会话 (比如被放弃、等待过期清理的) 不应在锁表里常驻
    for prefix in "abc":
        upload_id = prefix * 32
        await fs_store.put(_session(upload_id))
        await asyncio.gather(*(fs_store.add_received_chunk(upload_id, i) for i in range(3)))
        await fs_store.begin_completion(upload_id, 600)
    gc.collect()

    assert len(fs_store._locks) == 0
    assert (await fs_store.get("b" * 32)).received_chunks == {0, 1, 2}


async def test_redis_store_sets_ttl_and_completion_lock(redis_store, fake_redis):
    await redis_store.put(_session())
    await redis_store.add_received_chunk("a" * 32, 0)
    await redis_store.begin_completion("a" * 32, 120)

    assert fake_redis.ttl["test:upload:" + "a" * 32 + ":meta"] == 3600
    assert fake_redis.ttl["test:upload:" + "a" * 32 + ":chunks"] == 3600
    assert fake_redis.ttl["test:upload:" + "a" * 32 + ":completing"] == 120


async def test_redis_store_reports_latest_chunk_time(redis_store):
    session = _session()
    session.updated_at = datetime.now() - timedelta(days=3)
    await redis_store.put(session)

    await redis_store.add_received_chunk(session.upload_id, 0)

    loaded = await redis_store.get(session.upload_id)
    assert loaded.updated_at > datetime.now() - timedelta(minutes=1)


async def test_redis_list_ids_drops_expired_entries(redis_store, fake_redis):
    await redis_store.put(_session())
    # 模拟 meta 键过期
    del fake_redis.values["test:upload:" + "a" * 32 + ":meta"]

    assert await redis_store.list_ids() == []
    assert await fake_redis.smembers("test:upload:sessions") == set()
