# app/core/logger.py
from loguru import logger
import sys
import os
from pathlib import Path

# 获取运行环境
ENV = os.getenv("ENV", "dev").lower()

# 清除默认 handler
logger.remove()

# 控制台输出
logger.add(
    sys.stderr,
    level="DEBUG" if ENV in ("dev", "development") else "INFO",
    colorize=True,
    enqueue=True,
    backtrace=True,
    diagnose=ENV in ("dev", "development"),
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
           "<level>{level: <8}</level> | "
           "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
           "<level>{message}</level>"
)

_file_sinks_ready = False


def setup_file_logging(logging_config) -> None:
    """
    按配置追加文件日志 (普通文本 + JSON 结构化)。
    配置依赖 settings，而 settings 加载过程本身需要日志，所以文件 sink 在启动阶段再挂载。
    """
    global _file_sinks_ready
    if _file_sinks_ready or not logging_config.enable_file:
        return

    log_dir = Path(logging_config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    # 普通文本日志输出到文件
    logger.add(
        log_dir / "app.log",
        level="DEBUG",
        rotation=logging_config.rotation,
        retention=logging_config.retention,
        encoding="utf-8",
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )

    # JSON 结构化日志输出，只记录警告及以上
    logger.add(
        log_dir / "app.json",
        level="WARNING",
        rotation=logging_config.rotation,
        retention=logging_config.retention,
        serialize=True,
        encoding="utf-8",
        enqueue=True,
    )
    _file_sinks_ready = True
    logger.debug(f"File logging enabled at {log_dir}")


def get_logger(name: str = None):
    """仿 logging.getLogger() 实现的 loguru logger 工厂方法"""
    if name:
        return logger.bind(module=name)
    return logger


logger.debug(f"Log system initialized in {ENV} mode.")
