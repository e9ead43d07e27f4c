# backend/docbin/api/webhooks.py
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from starlette.concurrency import run_in_threadpool

from ..schemas.webhook import Webhook, WebhookCreate, WebhookUpdate
from ..services.documents import DocumentService
from ..utils.logging import api_logger
from .deps import get_document_service, get_token, get_webhook_secret

router = APIRouter(prefix="/documents/{key}/webhooks", tags=["webhooks"])


@router.post("", response_model=Webhook, status_code=status.HTTP_201_CREATED)
async def create_webhook(
        key: str,
        webhook: WebhookCreate,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    api_logger.info("Creating webhook", extra={"key": key, "events": webhook.events})
    return await run_in_threadpool(
        service.register_webhook, key, token, webhook.url, webhook.secret, webhook.events
    )


@router.get("/{webhook_id}", response_model=Webhook)
async def get_webhook(
        key: str,
        webhook_id: str,
        secret: Optional[str] = Depends(get_webhook_secret),
        service: DocumentService = Depends(get_document_service)
):
    return await run_in_threadpool(service.get_webhook, key, webhook_id, secret)


@router.patch("/{webhook_id}", response_model=Webhook)
async def update_webhook(
        key: str,
        webhook_id: str,
        webhook: WebhookUpdate,
        secret: Optional[str] = Depends(get_webhook_secret),
        service: DocumentService = Depends(get_document_service)
):
    api_logger.info("Updating webhook", extra={"key": key, "webhook_id": webhook_id})
    return await run_in_threadpool(
        service.update_webhook,
        key,
        webhook_id,
        secret,
        webhook.url,
        webhook.secret,
        webhook.events
    )


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(
        key: str,
        webhook_id: str,
        secret: Optional[str] = Depends(get_webhook_secret),
        service: DocumentService = Depends(get_document_service)
):
    api_logger.info("Deleting webhook", extra={"key": key, "webhook_id": webhook_id})
    await run_in_threadpool(service.delete_webhook, key, webhook_id, secret)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
