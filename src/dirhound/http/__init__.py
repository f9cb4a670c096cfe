"""
HTTP module - Request capability used by the scan engine.
"""

from .client import RequestClient, AiohttpClient


__all__ = [
    "RequestClient",
    "AiohttpClient",
]
