# backend/docbin/services/__init__.py
from .cleanup import CleanupService
from .documents import CreatedDocument, DocumentService, DocumentWrite
from .keys import KeyGenerator
from .render import PygmentsRenderer, Rendered, Renderer
from .store import KeyLockTable, VersionStore
from .tokens import Permission, TokenClaims, TokenService
from .webhooks import WebhookDispatcher, WebhookService

__all__ = [
    "CleanupService",
    "CreatedDocument", "DocumentService", "DocumentWrite",
    "KeyGenerator",
    "PygmentsRenderer", "Rendered", "Renderer",
    "KeyLockTable", "VersionStore",
    "Permission", "TokenClaims", "TokenService",
    "WebhookDispatcher", "WebhookService"
]
