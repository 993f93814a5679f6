from .config import settings
from .logging import logger, setup_logging

__all__ = [
    "logger",
    "settings",
    "setup_logging",
]
