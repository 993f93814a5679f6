"""
安全工具模块：密码哈希、下载短链签名
"""
import hmac
from hashlib import sha256

import anyio
import bcrypt

from dropcode.core.config import settings
from dropcode.core.errors import InvalidDownloadLink, StorageUnconfigured
from dropcode.utils.time_utils import Datetime


def get_password_hash(password: str, rounds: int | None = None) -> str:
    """生成密码的 bcrypt 哈希值"""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt(rounds=rounds or settings.PASSWORD_HASH_ROUNDS)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证明文密码与哈希值是否匹配（bcrypt 内部为常量时间比较）"""
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    try:
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        # 哈希格式损坏时视为不匹配
        return False


class PasswordHasher:
    """
    bcrypt 的异步包装

    bcrypt 为 CPU 密集型操作，放到工作线程执行以免阻塞事件循环。
    """

    def __init__(self, rounds: int | None = None):
        self.rounds = rounds or settings.PASSWORD_HASH_ROUNDS

    async def hash(self, plain: str) -> str:
        return await anyio.to_thread.run_sync(get_password_hash, plain, self.rounds)

    async def compare(self, plain: str, hashed: str) -> bool:
        return await anyio.to_thread.run_sync(verify_password, plain, hashed)


def _hmac_signature(secret_key: str, code: str, file_id: str, expires_at: int) -> str:
    secret = str(secret_key or "").encode("utf-8")
    if not secret:
        raise StorageUnconfigured("SECRET_KEY is not configured, cannot sign download links")
    msg = f"{code}\n{file_id}\n{int(expires_at)}".encode("utf-8")
    return hmac.new(secret, msg, sha256).hexdigest()


def sign_download_link(
    code: str,
    file_id: str,
    *,
    secret_key: str,
    ttl_seconds: int,
    now: int | None = None,
    not_after: int | None = None,
) -> tuple[int, str]:
    """
    返回 (expires_at, sig)

    签名绑定 code 与记录 id：同一 code 被新文件复用后旧链接即失效。
    not_after 为文件本身的过期时间，链接有效期不会超过它。
    """
    issued_at = Datetime.unix_now() if now is None else int(now)
    expires_at = issued_at + max(1, int(ttl_seconds))
    if not_after is not None:
        expires_at = min(expires_at, int(not_after))
    return expires_at, _hmac_signature(secret_key, code, file_id, expires_at)


def verify_download_link(
    code: str,
    file_id: str,
    *,
    expires: int,
    sig: str,
    secret_key: str,
    now: int | None = None,
) -> None:
    current = Datetime.unix_now() if now is None else int(now)
    if int(expires) <= current:
        raise InvalidDownloadLink("Download link expired")

    expected = _hmac_signature(secret_key, code, file_id, int(expires))
    if not hmac.compare_digest(str(sig or ""), expected):
        raise InvalidDownloadLink("Invalid download link signature")


__all__ = [
    "PasswordHasher",
    "get_password_hash",
    "sign_download_link",
    "verify_download_link",
    "verify_password",
]
