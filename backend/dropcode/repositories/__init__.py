from .file_record_store import FileRecordStore
from .pending_upload_registry import PendingUploadRegistry

__all__ = ["FileRecordStore", "PendingUploadRegistry"]
