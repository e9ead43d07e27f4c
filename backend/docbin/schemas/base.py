# backend/docbin/schemas/base.py
from datetime import datetime
from pydantic import BaseModel, ConfigDict

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

class SnapshotSchema(BaseModel):
    """Immutable view of stored rows, safe to hand out after the session closes"""
    model_config = ConfigDict(from_attributes=True, frozen=True)

class TimestampMixin(BaseModel):
    created_at: datetime
