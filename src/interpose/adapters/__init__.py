"""Transport interceptors."""

from .aiohttp_shim import AiohttpInterceptor
from .base import Interceptor, is_wrapper
from .fetch import FetchInterceptor
from .requests_shim import RequestsInterceptor
from .xhr import XHRInterceptor

__all__ = [
    "AiohttpInterceptor",
    "FetchInterceptor",
    "Interceptor",
    "RequestsInterceptor",
    "XHRInterceptor",
    "is_wrapper",
]
