# backend/docbin/api/deps.py
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import settings
from ..database import SessionLocal
from ..services.documents import DocumentService
from ..services.keys import KeyGenerator
from ..services.render import PygmentsRenderer
from ..services.store import VersionStore
from ..services.tokens import TokenService
from ..services.webhooks import WebhookDispatcher, WebhookService

bearer = HTTPBearer(auto_error=False)


@lru_cache
def get_document_service() -> DocumentService:
    store = VersionStore(SessionLocal, lock_timeout=settings.LOCK_TIMEOUT)
    return DocumentService(
        store=store,
        tokens=TokenService(settings.JWT_SECRET, issuer=settings.JWT_ISSUER),
        keys=KeyGenerator(settings.KEY_LENGTH),
        renderer=PygmentsRenderer(settings.DEFAULT_STYLE, settings.MAX_HIGHLIGHT_SIZE),
        webhooks=WebhookService(SessionLocal),
        max_key_tries=settings.KEY_MAX_TRIES,
        root_token_ttl=settings.ROOT_TOKEN_TTL,
        private_reads=settings.PRIVATE_READS,
    )


@lru_cache
def get_webhook_dispatcher() -> WebhookDispatcher:
    return WebhookDispatcher(
        timeout=settings.WEBHOOK_TIMEOUT,
        max_tries=settings.WEBHOOK_MAX_TRIES,
        backoff=settings.WEBHOOK_BACKOFF,
        backoff_factor=settings.WEBHOOK_BACKOFF_FACTOR,
        max_backoff=settings.WEBHOOK_MAX_BACKOFF,
    )


def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Optional[str]:
    """Bearer token from the Authorization header, if any"""
    return credentials.credentials if credentials else None


def get_webhook_secret(request: Request) -> Optional[str]:
    """Secret from an ``Authorization: Secret <secret>`` header"""
    value = request.headers.get("Authorization", "")
    scheme, _, secret = value.partition(" ")
    if scheme.lower() != "secret" or not secret.strip():
        return None
    return secret.strip()
