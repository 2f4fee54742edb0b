from typing import Dict, Optional, Literal

from pydantic import BaseModel, Field, model_validator


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    api_prefix: str = "/api"
    env: str = "dev"
    data_dir: str = "./data"


class DatabaseConfig(BaseModel):
    url: str
    echo: bool = False


class LoggingConfig(BaseModel):
    enable_file: bool = True
    log_dir: str = "./logs"
    rotation: str = "1 week"
    retention: str = "1 month"


class SecuritySettings(BaseModel):
    secret: str
    jwt_algorithm: str = "HS256"
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None
    token_expire_minutes: int = 60 * 24


class SingleRedisConfig(BaseModel):
    """
    单个 Redis 客户端的配置。
    同时支持直接提供 URL 或提供独立参数进行拼接。
    """
    url: Optional[str] = Field(None, description="完整的Redis连接URL，如果提供，将优先使用此配置。")

    host: Optional[str] = Field("localhost", description="Redis 主机 (当 url 未提供时使用)")
    port: Optional[int] = Field(6379, description="Redis 端口 (当 url 未提供时使用)")
    db: Optional[int] = Field(0, description="数据库编号 (当 url 未提供时使用)")
    password: Optional[str] = Field(None, description="密码 (当 url 未提供时使用)")

    max_connections: int = 10
    socket_timeout: int = 5
    socket_connect_timeout: int = 5
    serializer: str = "json"

    @model_validator(mode='after')
    def validate_and_build_url(self) -> 'SingleRedisConfig':
        if self.url:
            return self

        if not self.host or self.port is None:
            raise ValueError("If 'url' is not provided, 'host' and 'port' must be set.")

        auth_part = f":{self.password}@" if self.password else ""
        self.url = f"redis://{auth_part}{self.host}:{self.port}/{self.db or 0}"
        return self


class RedisConfig(BaseModel):
    clients: Dict[str, SingleRedisConfig] = Field(default_factory=dict)


class UploadConfig(BaseModel):
    """APK 上传（整包 / 分片）相关的配置"""
    apk_dir: str = Field("./uploads/apk", description="正式 APK 文件的存放目录")
    apk_public_prefix: str = Field("/uploads/apk", description="写入 FilePath 字段的公开下载路径前缀")
    chunk_dir: str = Field("./uploads/chunks", description="分片及会话元数据的临时存放目录")
    temp_dir: str = Field("./uploads/temp", description="整包上传与分片合并时的临时目录")

    max_chunk_size: int = Field(10 * 1024 * 1024, description="单个分片的最大字节数")
    max_apk_size: int = Field(200 * 1024 * 1024, description="整包上传允许的最大字节数")
    max_total_chunks: int = Field(10000, description="单次分片上传允许声明的最大分片数")
    assembly_timeout_seconds: int = Field(
        600,
        description="completing 状态超过该时长即视为上次合并已中断，允许重新合并"
    )

    session_backend: Literal["file", "redis"] = Field("file", description="分片会话元数据的存储后端")
    redis_client: str = Field("default", description="session_backend=redis 时使用的 Redis 客户端名称")
    session_ttl_seconds: int = Field(7 * 24 * 3600, description="Redis 会话键的过期时间 (秒)")


class BulkSyncConfig(BaseModel):
    max_batch_size: int = Field(50, description="单次批量同步允许的最大 CMO 数量")


# ========================================================================================
#
#   所有配置模型都要写在APPconfig上方
#
# ========================================================================================
class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    security_settings: SecuritySettings
    redis: RedisConfig = Field(default_factory=RedisConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    bulk_sync: BulkSyncConfig = Field(default_factory=BulkSyncConfig)
