"""
文件元数据索引（进程内存）

- 双索引：id -> FileRecord，code -> id
- 惰性过期：按 code 查询时发现已过期即移除并视为不存在
- 周期清理：sweep_expired() 回收内存，并把被移除的记录交给调用方删除对象

所有方法都是同步的，单个调用内部没有挂起点，因此在同一事件循环中天然原子。
"""
from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from dropcode.core.errors import Conflict, LimitReached, NotFound
from dropcode.core.logging import logger
from dropcode.models import FileRecord, NewFileRecord
from dropcode.utils.time_utils import Datetime


class FileRecordStore:
    def __init__(self, clock: Callable[[], datetime] = Datetime.now):
        self._clock = clock
        self._by_id: dict[str, FileRecord] = {}
        self._id_by_code: dict[str, str] = {}
        # 惰性过期移除、但对象尚未删除的记录，由下一次 sweep 交出
        self._expired_backlog: list[FileRecord] = []

    def __len__(self) -> int:
        return len(self._by_id)

    def count_live(self) -> int:
        now = self._clock()
        return sum(1 for record in self._by_id.values() if not record.is_expired(now))

    def now(self) -> datetime:
        return self._clock()

    def _live(self, record: FileRecord | None) -> FileRecord | None:
        if record is None:
            return None
        if record.is_expired(self._clock()):
            self._remove(record.id)
            self._expired_backlog.append(record)
            logger.info("file_record_expired", extra={"file_id": record.id, "code": record.code})
            return None
        return record

    def _remove(self, file_id: str) -> FileRecord | None:
        record = self._by_id.pop(file_id, None)
        if record is not None and self._id_by_code.get(record.code) == file_id:
            del self._id_by_code[record.code]
        return record

    def is_code_live(self, code: str) -> bool:
        file_id = self._id_by_code.get(code)
        return self._live(self._by_id.get(file_id)) is not None if file_id else False

    def create(self, fields: NewFileRecord) -> FileRecord:
        if self.is_code_live(fields.code):
            raise Conflict(f"Code {fields.code} is already in use")

        now = self._clock()
        if fields.expires_at <= now:
            raise ValueError("expires_at must be later than uploaded_at")
        if fields.size <= 0:
            raise ValueError("size must be positive")

        record = FileRecord(
            id=uuid.uuid4().hex,
            code=fields.code,
            storage_key=fields.storage_key,
            original_name=fields.original_name,
            size=fields.size,
            mime_type=fields.mime_type,
            uploaded_at=now,
            expires_at=fields.expires_at,
            password_hash=fields.password_hash or None,
            max_downloads=fields.max_downloads or None,
            download_count=0,
            is_one_time=bool(fields.is_one_time),
        )
        self._by_id[record.id] = record
        self._id_by_code[record.code] = record.id
        return record.snapshot()

    def get(self, file_id: str) -> FileRecord | None:
        record = self._live(self._by_id.get(file_id))
        return record.snapshot() if record else None

    def get_by_code(self, code: str) -> FileRecord | None:
        file_id = self._id_by_code.get(code)
        if not file_id:
            return None
        record = self._live(self._by_id.get(file_id))
        return record.snapshot() if record else None

    def delete(self, file_id: str) -> FileRecord | None:
        """移除记录；不存在时为空操作。返回被移除的记录以便调用方删除对象。"""
        return self._remove(file_id)

    def increment_download_count(self, file_id: str, delta: int = 1) -> int | None:
        record = self._by_id.get(file_id)
        if record is None:
            # 可能已被并发的一次性下载清理掉
            return None
        record.download_count = max(0, record.download_count + delta)
        return record.download_count

    def claim_download(self, file_id: str) -> FileRecord:
        """
        原子地检查下载上限并计数 +1，返回计数后的快照。

        检查与自增之间没有挂起点，并发请求无法同时越过上限。
        """
        record = self._live(self._by_id.get(file_id))
        if record is None:
            raise NotFound()
        if record.limit_reached():
            raise LimitReached()
        record.download_count += 1
        return record.snapshot()

    def sweep_expired(self) -> list[FileRecord]:
        now = self._clock()
        removed = [r for r in self._by_id.values() if r.is_expired(now)]
        for record in removed:
            self._remove(record.id)
        removed.extend(self._expired_backlog)
        self._expired_backlog = []
        return removed


__all__ = ["FileRecordStore"]
