from .concurrency import GatedResponse, RequestGate, build_concurrency_middleware
from .trace import trace_middleware

__all__ = [
    "GatedResponse",
    "RequestGate",
    "build_concurrency_middleware",
    "trace_middleware",
]
