# backend/docbin/schemas/webhook.py
from typing import List, Literal, Optional

from pydantic import AliasChoices, Field

from .base import BaseSchema, TimestampMixin

WebhookEvent = Literal["update", "delete"]


class WebhookCreate(BaseSchema):
    url: str = Field(min_length=1)
    secret: str = Field(min_length=1)
    events: List[WebhookEvent] = Field(min_length=1)


class WebhookUpdate(BaseSchema):
    url: Optional[str] = None
    secret: Optional[str] = None
    events: Optional[List[WebhookEvent]] = None


class Webhook(BaseSchema, TimestampMixin):
    id: str
    document_key: str
    url: str
    secret: str
    events: List[WebhookEvent] = Field(validation_alias=AliasChoices("event_list", "events"))
