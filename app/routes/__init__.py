"""
Routes package.
"""

from .auth import router as auth_router
from .sync import router as sync_router
from .logs import router as logs_router
from .link import router as link_router
from .connection import router as connection_router

__all__ = [
    "auth_router",
    "sync_router",
    "logs_router",
    "link_router",
    "connection_router",
]
