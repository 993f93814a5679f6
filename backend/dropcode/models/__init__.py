from .file_record import FileRecord, NewFileRecord, PublicFileView
from .pending_upload import PendingUpload, Reservation, UploadPolicy, UploadRequest

__all__ = [
    "FileRecord",
    "NewFileRecord",
    "PendingUpload",
    "PublicFileView",
    "Reservation",
    "UploadPolicy",
    "UploadRequest",
]
