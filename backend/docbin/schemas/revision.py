# backend/docbin/schemas/revision.py
from datetime import datetime
from typing import Optional, Tuple

from pydantic import Field

from .base import SnapshotSchema, TimestampMixin


class FileData(SnapshotSchema):
    name: str
    content: str
    language: str = "auto"


class Revision(SnapshotSchema, TimestampMixin):
    document_key: str
    version: int
    expires_at: Optional[datetime] = None
    files: Tuple[FileData, ...] = Field(min_length=1)

    def file(self, name: str) -> Optional[FileData]:
        """Case-insensitive lookup of a file by name"""
        folded = name.casefold()
        for file in self.files:
            if file.name.casefold() == folded:
                return file
        return None


class VersionInfo(SnapshotSchema, TimestampMixin):
    version: int
