from .credit import router as credit_router
from .tools import router as tools_router
from .admin import router as admin_router
from .notifications import router as notifications_router

__all__ = [
    "credit_router",
    "tools_router",
    "admin_router",
    "notifications_router",
]
