"""
API routers package.
"""
from app.routers.integrations import router as integrations_router
from app.routers.webhooks import router as webhooks_router

__all__ = [
    "integrations_router",
    "webhooks_router",
]
