"""Complaint Desk - API Routers"""
from .auth import router as auth_router
from .complaints import router as complaints_router
from .admin import router as admin_router
from .scheduler import router as scheduler_router

__all__ = [
    "auth_router",
    "complaints_router",
    "admin_router",
    "scheduler_router",
]
