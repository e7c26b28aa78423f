"""
API Routers
"""
from app.api.auth import router as auth_router, users_router
from app.api.subscriptions import router as subscriptions_router
from app.api.email import router as email_router
from app.api.admin import router as admin_router

__all__ = [
    "auth_router",
    "users_router",
    "subscriptions_router",
    "email_router",
    "admin_router",
]
