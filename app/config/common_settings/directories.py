# app/config/common_settings/directories.py

from pathlib import Path

from app.config.config_settings.config_schema import AppConfig


class AppDirectories:
    """
    集中管理应用用到的文件系统路径。
    APK 正式目录、分片目录、临时目录都来自 upload 配置，启动时统一创建。
    """

    def __init__(self, config: AppConfig):
        self.DATA_DIR = Path(config.server.data_dir)
        self.LOG_DIR = Path(config.logging.log_dir)

        self.APK_DIR = Path(config.upload.apk_dir)
        self.CHUNK_DIR = Path(config.upload.chunk_dir)
        self.TEMP_DIR = Path(config.upload.temp_dir)

    def all_dirs(self) -> list[Path]:
        return [getattr(self, attr) for attr in vars(self) if isinstance(getattr(self, attr), Path)]

    def ensure_directories(self) -> None:
        for directory in self.all_dirs():
            directory.mkdir(parents=True, exist_ok=True)
