# backend/docbin/schemas/document.py
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .base import BaseSchema


class ResponseFile(BaseSchema):
    name: str
    content: str
    formatted: Optional[str] = None
    language: str


class DocumentResponse(BaseSchema):
    key: str
    version: int
    version_label: str
    version_time: str
    data: str
    formatted: Optional[str] = None
    css: Optional[str] = None
    language: str
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    files: List[ResponseFile] = []


class VersionResponse(BaseSchema):
    version: int
    version_label: str
    version_time: str


class ShareRequest(BaseSchema):
    permissions: List[str] = Field(default_factory=list)


class ShareResponse(BaseSchema):
    token: str
