from .code_generator import CodeGenerator, generate_code, is_valid_code
from .container import ServiceContainer
from .download_service import DownloadSession, DownloadWorkflow
from .sweeper import PeriodicSweeper
from .upload_service import UploadWorkflow

__all__ = [
    "CodeGenerator",
    "DownloadSession",
    "DownloadWorkflow",
    "PeriodicSweeper",
    "ServiceContainer",
    "UploadWorkflow",
    "generate_code",
    "is_valid_code",
]
