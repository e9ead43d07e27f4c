# backend/docbin/api/__init__.py
from .documents import router as documents_router
from .raw import router as raw_router
from .webhooks import router as webhooks_router

__all__ = ["documents_router", "raw_router", "webhooks_router"]
