# backend/docbin/models/__init__.py
from ..database import Base
from .document import Document
from .revision import Revision, File
from .webhook import Webhook

__all__ = [
    "Base",
    "Document",
    "Revision",
    "File",
    "Webhook"
]
