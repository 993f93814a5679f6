from __future__ import annotations

from typing import Literal

from dropcode.core.config import Settings, settings as default_settings
from dropcode.core.logging import logger

from .base import BlobMeta, BlobStore, BlobStream, PresignedUpload
from .local import LocalBlobStore
from .s3 import S3BlobStore


def _s3_is_configured(cfg: Settings) -> bool:
    required = (cfg.S3_BUCKET, cfg.S3_ACCESS_KEY_ID, cfg.S3_SECRET_ACCESS_KEY)
    return all(bool(str(v or "").strip()) for v in required)


def get_effective_storage_mode(cfg: Settings | None = None) -> Literal["local", "s3"]:
    cfg = cfg or default_settings
    mode = str(cfg.STORAGE_MODE or "auto").strip().lower()
    if mode == "local":
        return "local"
    if mode == "s3":
        return "s3"
    if mode != "auto":
        logger.warning(f"Unknown STORAGE_MODE={mode}; fallback to auto")
    return "s3" if _s3_is_configured(cfg) else "local"


def create_blob_store(cfg: Settings | None = None) -> BlobStore:
    """按配置构造对象存储后端"""
    cfg = cfg or default_settings
    mode = get_effective_storage_mode(cfg)
    if mode == "local":
        logger.warning("Object storage runs in local mode; presigned direct uploads are disabled")
        return LocalBlobStore(cfg.LOCAL_STORAGE_DIR, key_prefix=cfg.OBJECT_KEY_PREFIX)

    store = S3BlobStore(
        bucket=cfg.S3_BUCKET,
        endpoint=cfg.S3_ENDPOINT,
        region=cfg.S3_REGION,
        access_key_id=cfg.S3_ACCESS_KEY_ID,
        secret_access_key=cfg.S3_SECRET_ACCESS_KEY,
        force_path_style=cfg.S3_FORCE_PATH_STYLE,
        key_prefix=cfg.OBJECT_KEY_PREFIX,
    )
    if not store.is_configured():
        # 显式 s3 模式但缺少凭证：请求时返回 503，而不是启动失败
        logger.warning("STORAGE_MODE=s3 but S3_* credentials are missing; storage calls will fail")
    return store


__all__ = [
    "BlobMeta",
    "BlobStore",
    "BlobStream",
    "LocalBlobStore",
    "PresignedUpload",
    "S3BlobStore",
    "create_blob_store",
    "get_effective_storage_mode",
]
