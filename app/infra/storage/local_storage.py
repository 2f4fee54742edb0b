# app/infra/storage/local_storage.py
import os
import shutil
import uuid
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Union

from starlette.concurrency import run_in_threadpool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from app.core.exceptions import ValidationException
from app.core.logger import get_logger

PathLike = Union[str, Path]

COPY_BUFFER_SIZE = 1024 * 1024

logger = get_logger("LocalFileStorage")


class LocalFileStorage:
    """
    本地磁盘上的字节存储：分片、会话元数据、合并产物和正式 APK 都经由这里落盘。
    所有阻塞 IO 都丢到线程池，调用方只 await。
    """

    # ==========================
    # 同步实现 (在线程池中执行)
    # ==========================

    @staticmethod
    def _write_atomic_sync(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.part")
        try:
            with open(tmp_path, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            # 同一目录内 replace 是原子的，同一位置并发写入时后写者覆盖
            os.replace(tmp_path, path)
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

    @staticmethod
    def _concat_sync(parts: List[Path], dest: Path) -> int:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(dest, "wb") as out:
            for part in parts:
                with open(part, "rb") as src:
                    shutil.copyfileobj(src, out, COPY_BUFFER_SIZE)
            out.flush()
            os.fsync(out.fileno())
            written = out.tell()
        return written

    @staticmethod
    def _move_sync(src: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dest))

    @staticmethod
    def _delete_file_sync(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False

    @staticmethod
    def _delete_dir_sync(path: Path) -> bool:
        if not path.exists():
            return False
        shutil.rmtree(path)
        return True

    @staticmethod
    def _list_dirs_sync(path: Path) -> List[Path]:
        if not path.is_dir():
            return []
        return [p for p in path.iterdir() if p.is_dir()]

    # ==========================
    # 异步接口
    # ==========================

    async def write_bytes(self, path: PathLike, data: bytes) -> None:
        """原子写入：先写临时文件再 os.replace，读方永远看不到写了一半的文件。"""
        await run_in_threadpool(self._write_atomic_sync, Path(path), data)

    async def read_bytes(self, path: PathLike) -> bytes:
        return await run_in_threadpool(Path(path).read_bytes)

    async def read_bytes_if_exists(self, path: PathLike) -> Optional[bytes]:
        try:
            return await self.read_bytes(path)
        except FileNotFoundError:
            return None

    async def exists(self, path: PathLike) -> bool:
        return await run_in_threadpool(Path(path).exists)

    async def size(self, path: PathLike) -> int:
        stat = await run_in_threadpool(Path(path).stat)
        return stat.st_size

    async def concat(self, parts: List[PathLike], dest: PathLike) -> int:
        """按给定顺序逐个拼接 parts 到 dest，返回写入的总字节数。"""
        return await run_in_threadpool(self._concat_sync, [Path(p) for p in parts], Path(dest))

    @retry(
        retry=retry_if_exception_type(PermissionError),
        wait=wait_fixed(0.5),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def move(self, src: PathLike, dest: PathLike) -> None:
        await run_in_threadpool(self._move_sync, Path(src), Path(dest))

    async def delete_file(self, path: PathLike) -> bool:
        return await run_in_threadpool(self._delete_file_sync, Path(path))

    async def delete_dir(self, path: PathLike) -> bool:
        return await run_in_threadpool(self._delete_dir_sync, Path(path))

    async def list_dirs(self, path: PathLike) -> List[Path]:
        return await run_in_threadpool(self._list_dirs_sync, Path(path))

    async def discard(self, path: PathLike) -> None:
        """尽力删除，用于失败路径上的清理：删除失败只记日志，不覆盖原始异常。"""
        try:
            await self.delete_file(path)
        except OSError as e:
            logger.error(f"Failed to remove file {path}: {e}")

    async def write_stream(
            self,
            read_chunk: Callable[[int], Awaitable[bytes]],
            dest: PathLike,
            max_bytes: int,
    ) -> int:
        """
        把一个异步可读流 (例如 UploadFile.read) 写入 dest，超过 max_bytes 时中止并删除已写部分。
        """
        dest = Path(dest)
        await run_in_threadpool(dest.parent.mkdir, parents=True, exist_ok=True)
        fh = await run_in_threadpool(open, dest, "wb")
        total = 0
        try:
            while True:
                block = await read_chunk(COPY_BUFFER_SIZE)
                if not block:
                    break
                total += len(block)
                if total > max_bytes:
                    raise ValidationException(
                        f"File is too large. Max size is {max_bytes // (1024 * 1024)}MB."
                    )
                await run_in_threadpool(fh.write, block)
        except Exception:
            await run_in_threadpool(fh.close)
            await self.discard(dest)
            raise
        await run_in_threadpool(fh.close)
        return total


local_storage = LocalFileStorage()
