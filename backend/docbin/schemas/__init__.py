# backend/docbin/schemas/__init__.py
from .revision import FileData, Revision, VersionInfo
from .document import DocumentResponse, ResponseFile, VersionResponse, ShareRequest, ShareResponse
from .webhook import Webhook, WebhookCreate, WebhookUpdate, WebhookEvent

__all__ = [
    "FileData", "Revision", "VersionInfo",
    "DocumentResponse", "ResponseFile", "VersionResponse", "ShareRequest", "ShareResponse",
    "Webhook", "WebhookCreate", "WebhookUpdate", "WebhookEvent"
]
