from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    应用配置
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # 基础配置
    PROJECT_NAME: str = "DropCode"
    API_PREFIX: str = "/api"

    # 调试模式
    DEBUG: bool = False

    # 环境配置
    ENVIRONMENT: str = "development"  # development/production/test

    # 追踪与可观察性
    TRACE_ID_HEADER: str = "X-Trace-Id"

    # 入口并发闸门(每进程)
    MAX_CONCURRENT_REQUESTS: int = 200
    QUEUE_TIMEOUT_SECONDS: float = 0.25  # 排队等待并发槽的超时(秒)

    # 日志配置 (Loguru)
    LOG_LEVEL: str = "INFO"
    LOG_JSON_FORMAT: bool = False
    LOG_FILE_PATH: str = ""
    LOG_ROTATION: str = "100 MB"  # 日志文件大小轮转
    LOG_RETENTION: str = "10 days"  # 日志保留时间
    LOG_ASYNC: bool = True

    # CORS 配置
    BACKEND_CORS_ORIGINS: list[str] = ["*"]

    # 对象存储配置
    STORAGE_MODE: str = "auto"  # auto | s3 | local
    S3_ENDPOINT: str = ""
    S3_REGION: str = "us-east-1"
    S3_BUCKET: str = ""
    S3_ACCESS_KEY_ID: str = ""
    S3_SECRET_ACCESS_KEY: str = ""
    S3_FORCE_PATH_STYLE: bool = True  # 兼容 IDrive e2 / MinIO 等 S3 兼容服务
    OBJECT_KEY_PREFIX: str = "uploads"
    LOCAL_STORAGE_DIR: str = "backend/media/uploads"
    STREAM_CHUNK_SIZE: int = 64 * 1024

    # 上传策略
    UPLOAD_MAX_BYTES: int = 2 * 1024 * 1024 * 1024  # 预签名直传上限 2GB
    DIRECT_UPLOAD_MAX_BYTES: int = 50 * 1024 * 1024  # 经服务端中转上传上限 50MB
    UPLOAD_ALLOWED_MIME_TYPES: list[str] = ["*/*"]
    UPLOAD_BLOCKED_EXTENSIONS: list[str] = []
    UPLOAD_FILENAME_MAX_LENGTH: int = 255
    PRESIGN_EXPIRES_SECONDS: int = 600
    PENDING_UPLOAD_TTL_SECONDS: int = 15 * 60
    PENDING_SWEEP_INTERVAL_SECONDS: float = 5 * 60
    UPLOAD_SIZE_TOLERANCE_BYTES: int = 1024

    # 文件生命周期
    FILE_DEFAULT_EXPIRES_HOURS: int = 24
    FILE_MAX_EXPIRES_HOURS: int = 7 * 24
    FILE_SWEEP_INTERVAL_SECONDS: float = 60
    CODE_MAX_ATTEMPTS: int = 1000
    DELETE_ON_DOWNLOAD_LIMIT: bool = True  # 达到下载上限后立即删除记录与对象

    # 安全配置
    SECRET_KEY: str = ""  # 下载短链签名密钥
    DOWNLOAD_LINK_TTL_SECONDS: int = 3600
    PASSWORD_HASH_ROUNDS: int = 12


settings = Settings()
