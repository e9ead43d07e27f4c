# backend/docbin/services/webhooks.py
import asyncio
import hmac
import time
from contextlib import contextmanager
from typing import Callable, Iterable, List, Optional
from uuid import uuid4

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import Document, Webhook
from ..schemas.revision import Revision
from ..schemas.webhook import Webhook as WebhookSchema
from ..utils.logging import webhook_logger
from .store import DocumentNotFoundError, StoreError, as_utc, is_expired, utcnow

WEBHOOK_EVENTS = ("update", "delete")


class WebhookNotFoundError(StoreError):
    def __init__(self, key: str, webhook_id: str):
        self.key = key
        self.webhook_id = webhook_id
        super().__init__(f"webhook {webhook_id} not found for document {key}")


class InvalidWebhookError(StoreError):
    pass


def _validate_events(events: Iterable[str]) -> str:
    events = [event.strip().lower() for event in events]
    if not events:
        raise InvalidWebhookError("missing webhook events")
    for event in events:
        if event not in WEBHOOK_EVENTS:
            raise InvalidWebhookError(f"unknown webhook event: {event}")
    return ",".join(dict.fromkeys(events))


def _to_schema(webhook: Webhook) -> WebhookSchema:
    return WebhookSchema(
        id=webhook.id,
        document_key=webhook.document_key,
        url=webhook.url,
        secret=webhook.secret,
        events=webhook.event_list,
        created_at=as_utc(webhook.created_at),
    )


class WebhookService:
    """Webhook registrations, stored next to the document they watch"""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _load(self, session: Session, key: str, webhook_id: str, secret: str) -> Webhook:
        webhook = session.get(Webhook, webhook_id)
        if (
                webhook is None
                or webhook.document_key != key
                or not hmac.compare_digest(webhook.secret.encode(), secret.encode())
        ):
            raise WebhookNotFoundError(key, webhook_id)
        return webhook

    def create(self, key: str, url: str, secret: str, events: Iterable[str]) -> WebhookSchema:
        if not url:
            raise InvalidWebhookError("missing webhook url")
        if not secret:
            raise InvalidWebhookError("missing webhook secret")
        event_string = _validate_events(events)

        with self._transaction() as session:
            document = session.get(Document, key)
            if document is None or is_expired(document, utcnow()):
                raise DocumentNotFoundError(key)

            webhook = Webhook(
                id=uuid4().hex,
                document_key=key,
                url=url,
                secret=secret,
                events=event_string,
                created_at=utcnow()
            )
            session.add(webhook)
            session.flush()
            result = _to_schema(webhook)

        webhook_logger.info("Registered webhook", extra={"key": key, "webhook_id": result.id})
        return result

    def get(self, key: str, webhook_id: str, secret: str) -> WebhookSchema:
        with self._transaction() as session:
            return _to_schema(self._load(session, key, webhook_id, secret))

    def update(
            self,
            key: str,
            webhook_id: str,
            secret: str,
            url: Optional[str] = None,
            new_secret: Optional[str] = None,
            events: Optional[Iterable[str]] = None
    ) -> WebhookSchema:
        if not url and not new_secret and not events:
            raise InvalidWebhookError("missing url, secret or events")

        with self._transaction() as session:
            webhook = self._load(session, key, webhook_id, secret)
            if url:
                webhook.url = url
            if new_secret:
                webhook.secret = new_secret
            if events:
                webhook.events = _validate_events(events)
            session.flush()
            return _to_schema(webhook)

    def delete(self, key: str, webhook_id: str, secret: str) -> None:
        with self._transaction() as session:
            session.delete(self._load(session, key, webhook_id, secret))
        webhook_logger.info("Deleted webhook", extra={"key": key, "webhook_id": webhook_id})

    def for_event(self, key: str, event: str) -> List[WebhookSchema]:
        with self._transaction() as session:
            webhooks = session.scalars(select(Webhook).where(Webhook.document_key == key)).all()
            return [_to_schema(webhook) for webhook in webhooks if event in webhook.event_list]


class WebhookDispatcher:
    """Posts document events to registered webhooks, retrying with linear backoff"""

    def __init__(
            self,
            timeout: float = 10.0,
            max_tries: int = 3,
            backoff: float = 1.0,
            backoff_factor: float = 2.0,
            max_backoff: float = 30.0,
            transport: Optional[httpx.AsyncBaseTransport] = None,
            user_agent: str = "docbin"
    ):
        self.timeout = timeout
        self.max_tries = max(1, max_tries)
        self.backoff = backoff
        self.backoff_factor = backoff_factor
        self.max_backoff = max_backoff
        self.user_agent = user_agent
        self._transport = transport

    def _delay(self, attempt: int) -> float:
        return min(self.backoff_factor * self.backoff * attempt, self.max_backoff)

    async def dispatch(self, event: str, revision: Revision, webhooks: Iterable[WebhookSchema]) -> int:
        """Deliver ``event`` to every webhook subscribed to it; returns the number of successful deliveries"""
        targets = [webhook for webhook in webhooks if event in webhook.events]
        if not targets:
            return 0

        start_time = time.time()
        created_at = utcnow().isoformat()
        document = {
            "key": revision.document_key,
            "version": revision.version,
            "files": [
                {"name": file.name, "content": file.content, "language": file.language}
                for file in revision.files
            ],
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            results = await asyncio.gather(*(
                self._deliver(client, webhook, {
                    "webhook_id": webhook.id,
                    "event": event,
                    "created_at": created_at,
                    "document": document,
                })
                for webhook in targets
            ))

        delivered = sum(1 for result in results if result)
        webhook_logger.debug("Finished emitting webhooks", extra={
            "event": event,
            "key": revision.document_key,
            "delivered": delivered,
            "targets": len(targets),
            "execution_time_ms": round((time.time() - start_time) * 1000, 2)
        })
        return delivered

    async def _deliver(self, client: httpx.AsyncClient, webhook: WebhookSchema, payload: dict) -> bool:
        headers = {
            "Authorization": f"Secret {webhook.secret}",
            "User-Agent": self.user_agent,
        }
        log_extra = {"event": payload["event"], "webhook_id": webhook.id, "key": webhook.document_key}

        for attempt in range(self.max_tries):
            delay = self._delay(attempt)
            if delay > 0:
                webhook_logger.debug(f"Sleeping {delay}s before retrying webhook", extra=log_extra)
                await asyncio.sleep(delay)

            try:
                response = await client.post(webhook.url, json=payload, headers=headers)
            except httpx.HTTPError as e:
                webhook_logger.debug("Failed to execute webhook request", extra={**log_extra, "error": str(e)})
                continue

            if not response.is_success:
                webhook_logger.debug("Webhook returned an error status", extra={
                    **log_extra,
                    "status": response.status_code
                })
                continue

            webhook_logger.debug("Successfully executed webhook", extra=log_extra)
            return True

        webhook_logger.error("Failed to execute webhook: max tries reached", extra=log_extra)
        return False
