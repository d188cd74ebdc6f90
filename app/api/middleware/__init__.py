from .body_limit import BodySizeLimitMiddleware
from .cors import CORSMiddleware
from .logging import RequestLoggingMiddleware

__all__ = [
    "BodySizeLimitMiddleware",
    "CORSMiddleware",
    "RequestLoggingMiddleware",
]
