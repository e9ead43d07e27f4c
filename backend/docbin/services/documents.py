# backend/docbin/services/documents.py
"""Document operations under token permissions.

The service sits between the HTTP layer and the storage/token modules and is
the only place where their typed errors are translated into the public
``docbin.errors`` taxonomy.
"""
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from ..errors import (
    Conflict,
    Forbidden,
    InvalidInput,
    NotFound,
    ResourceExhausted,
    Unauthorized,
)
from ..schemas.revision import FileData, Revision, VersionInfo
from ..schemas.webhook import Webhook
from ..utils.logging import service_logger
from .keys import KeyGenerator
from .render import PygmentsRenderer, Rendered, Renderer, UnknownFormatterError
from .store import (
    ConcurrentWriteError,
    DocumentFileNotFoundError,
    DocumentNotFoundError,
    InvalidRevisionError,
    KeyConflictError,
    RevisionNotFoundError,
    StoreTimeoutError,
    VersionStore,
    as_utc,
    utcnow,
)
from .tokens import (
    InsufficientPermissionError,
    InvalidTokenError,
    Permission,
    PermissionDeniedError,
    TokenClaims,
    TokenExpiredError,
    TokenService,
    WrongDocumentError,
)
from .webhooks import InvalidWebhookError, WebhookNotFoundError, WebhookService


@dataclass(frozen=True)
class CreatedDocument:
    revision: Revision
    token: str


@dataclass(frozen=True)
class DocumentWrite:
    """Result of a write, with the webhooks that should hear about it"""
    revision: Revision
    webhooks: List[Webhook] = field(default_factory=list)


@contextmanager
def translate_errors():
    """Map storage and token errors onto the public taxonomy"""
    try:
        yield
    except (DocumentNotFoundError, RevisionNotFoundError, DocumentFileNotFoundError, WebhookNotFoundError) as e:
        raise NotFound(str(e)) from e
    except KeyConflictError as e:
        raise Conflict(str(e)) from e
    except ConcurrentWriteError as e:
        raise Conflict(str(e)) from e
    except (InvalidRevisionError, InvalidWebhookError, UnknownFormatterError) as e:
        raise InvalidInput(str(e)) from e
    except StoreTimeoutError as e:
        raise ResourceExhausted(str(e)) from e
    except (InvalidTokenError, TokenExpiredError) as e:
        raise Unauthorized(str(e)) from e
    except (WrongDocumentError, InsufficientPermissionError, PermissionDeniedError) as e:
        raise Forbidden(str(e)) from e


class DocumentService:
    def __init__(
            self,
            store: VersionStore,
            tokens: TokenService,
            keys: Optional[KeyGenerator] = None,
            renderer: Optional[Renderer] = None,
            webhooks: Optional[WebhookService] = None,
            max_key_tries: int = 10,
            root_token_ttl: Optional[int] = None,
            private_reads: bool = False
    ):
        self.store = store
        self.tokens = tokens
        self.keys = keys or KeyGenerator()
        self.renderer = renderer or PygmentsRenderer()
        self.webhooks = webhooks
        self.max_key_tries = max_key_tries
        self.root_token_ttl = root_token_ttl
        self.private_reads = private_reads

    def authorize(self, key: str, token: Optional[str], required: Permission) -> TokenClaims:
        if not token:
            raise Unauthorized("missing token")
        with translate_errors():
            try:
                return self.tokens.validate(token, key, required)
            except TokenExpiredError:
                # root tokens expire together with their document
                if not self.store.exists(key):
                    raise DocumentNotFoundError(key) from None
                raise

    def _authorize_read(self, key: str, token: Optional[str]) -> None:
        if self.private_reads:
            self.authorize(key, token, Permission.NONE)

    @staticmethod
    def _check_expiry(expires_at: Optional[datetime]) -> Optional[datetime]:
        if expires_at is None:
            return None
        expires_at = as_utc(expires_at)
        if expires_at <= utcnow():
            raise InvalidInput("invalid expires_at, must be in the future")
        return expires_at

    def create_document(self, files: Iterable[FileData], expires_at: Optional[datetime] = None) -> CreatedDocument:
        start_time = time.time()
        files = list(files)
        expires_at = self._check_expiry(expires_at)

        revision = None
        with translate_errors():
            for attempt in range(self.max_key_tries):
                key = self.keys.generate()
                if self.store.exists(key):
                    service_logger.warning("Generated key already in use", extra={"key": key, "attempt": attempt})
                    continue
                try:
                    revision = self.store.create(key, files, expires_at)
                    break
                except KeyConflictError:
                    service_logger.warning("Key taken while creating document", extra={"key": key, "attempt": attempt})

        if revision is None:
            service_logger.error("Failed to generate a unique document key", extra={"tries": self.max_key_tries})
            raise ResourceExhausted(f"failed to create document because of duplicate key after {self.max_key_tries} tries")

        token = self.tokens.issue(
            revision.document_key,
            Permission.ALL,
            ttl=self.root_token_ttl,
            expires_at=revision.expires_at
        )

        service_logger.info("Created document", extra={
            "key": revision.document_key,
            "file_count": len(revision.files),
            "expires_at": revision.expires_at.isoformat() if revision.expires_at else None,
            "execution_time_ms": round((time.time() - start_time) * 1000, 2)
        })
        return CreatedDocument(revision=revision, token=token)

    def update_document(
            self,
            key: str,
            token: Optional[str],
            files: Iterable[FileData],
            expires_at: Optional[datetime] = None
    ) -> DocumentWrite:
        self.authorize(key, token, Permission.WRITE)
        expires_at = self._check_expiry(expires_at)
        with translate_errors():
            revision = self.store.append_revision(key, files, expires_at)
            webhooks = self.webhooks.for_event(key, "update") if self.webhooks else []

        service_logger.info("Updated document", extra={"key": key, "version": revision.version})
        return DocumentWrite(revision=revision, webhooks=webhooks)

    def read_document(self, key: str, version: Optional[int] = None, token: Optional[str] = None) -> Revision:
        self._authorize_read(key, token)
        with translate_errors():
            return self.store.get(key, version)

    def read_file(
            self,
            key: str,
            filename: str,
            version: Optional[int] = None,
            token: Optional[str] = None
    ) -> FileData:
        self._authorize_read(key, token)
        with translate_errors():
            return self.store.get_file(key, filename, version)

    def list_versions(self, key: str, token: Optional[str] = None) -> List[VersionInfo]:
        self._authorize_read(key, token)
        with translate_errors():
            return self.store.list_versions(key)

    def delete_document(self, key: str, token: Optional[str]) -> DocumentWrite:
        self.authorize(key, token, Permission.DELETE)
        with translate_errors():
            # webhooks are removed with the document, so collect them first
            webhooks = self.webhooks.for_event(key, "delete") if self.webhooks else []
            revision = self.store.delete(key)

        service_logger.info("Deleted document", extra={"key": key, "version": revision.version})
        return DocumentWrite(revision=revision, webhooks=webhooks)

    def share_document(self, key: str, token: Optional[str], permissions: Permission) -> str:
        if not permissions:
            raise InvalidInput("no permissions provided")
        self.authorize(key, token, Permission.SHARE)
        with translate_errors():
            if not self.store.exists(key):
                raise DocumentNotFoundError(key)
            derived = self.tokens.derive(token, permissions)

        service_logger.info("Shared document", extra={"key": key, "permissions": permissions.names()})
        return derived

    def render_file(
            self,
            file: FileData,
            language: Optional[str] = None,
            formatter: Optional[str] = None,
            style: Optional[str] = None
    ) -> Rendered:
        with translate_errors():
            return self.renderer.render(
                file.content,
                language or file.language,
                filename=file.name,
                formatter=formatter,
                style=style
            )

    def register_webhook(self, key: str, token: Optional[str], url: str, secret: str, events: Iterable[str]) -> Webhook:
        self.authorize(key, token, Permission.WEBHOOK)
        with translate_errors():
            return self._require_webhooks().create(key, url, secret, events)

    def get_webhook(self, key: str, webhook_id: str, secret: Optional[str]) -> Webhook:
        with translate_errors():
            return self._require_webhooks().get(key, webhook_id, self._require_secret(secret))

    def update_webhook(
            self,
            key: str,
            webhook_id: str,
            secret: Optional[str],
            url: Optional[str] = None,
            new_secret: Optional[str] = None,
            events: Optional[Iterable[str]] = None
    ) -> Webhook:
        with translate_errors():
            return self._require_webhooks().update(
                key, webhook_id, self._require_secret(secret), url=url, new_secret=new_secret, events=events
            )

    def delete_webhook(self, key: str, webhook_id: str, secret: Optional[str]) -> None:
        with translate_errors():
            self._require_webhooks().delete(key, webhook_id, self._require_secret(secret))

    def _require_webhooks(self) -> WebhookService:
        if self.webhooks is None:
            raise NotFound("webhooks are not enabled")
        return self.webhooks

    @staticmethod
    def _require_secret(secret: Optional[str]) -> str:
        if not secret:
            raise InvalidInput("missing webhook secret")
        return secret
