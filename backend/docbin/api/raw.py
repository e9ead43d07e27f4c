# backend/docbin/api/raw.py
from typing import List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Response
from starlette.concurrency import run_in_threadpool

from ..schemas.revision import FileData
from ..services.documents import DocumentService
from ..services.render import MEDIA_TYPES
from ..utils.files import content_disposition
from ..utils.logging import api_logger
from .deps import get_document_service, get_token

router = APIRouter(prefix="/raw", tags=["raw"])

PLAIN_TEXT = "text/plain; charset=utf-8"


def _render_raw(service: DocumentService, file: FileData, language: Optional[str], formatter: Optional[str], style: Optional[str]):
    rendered = service.render_file(file, language, formatter, style)
    body = rendered.formatted if rendered.formatted is not None else file.content
    return body, MEDIA_TYPES.get(formatter or "", PLAIN_TEXT), rendered.language


def raw_file_response(
        service: DocumentService,
        file: FileData,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        style: Optional[str] = None
) -> Response:
    body, media_type, detected = _render_raw(service, file, language, formatter, style)
    return Response(
        content=body,
        media_type=media_type,
        headers={
            "Content-Disposition": content_disposition("inline", file.name),
            "Language": detected
        }
    )


def raw_multipart_response(
        service: DocumentService,
        files: List[FileData],
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        style: Optional[str] = None
) -> Response:
    """Several files as one multipart/form-data body, one ``file-N`` part per file"""
    boundary = uuid4().hex
    parts = []
    for index, file in enumerate(files):
        body, media_type, detected = _render_raw(service, file, language, formatter, style)
        disposition = content_disposition(f'form-data; name="file-{index}"', file.name)
        parts.append(
            f"--{boundary}\r\n"
            f"Content-Disposition: {disposition}\r\n"
            f"Content-Type: {media_type}\r\n"
            f"Language: {detected}\r\n"
            f"\r\n"
            f"{body}\r\n"
        )
    parts.append(f"--{boundary}--\r\n")
    return Response(content="".join(parts), media_type=f"multipart/form-data; boundary={boundary}")


async def _raw_document(
        service: DocumentService,
        key: str,
        version: Optional[int],
        token: Optional[str],
        language: Optional[str],
        formatter: Optional[str],
        style: Optional[str]
) -> Response:
    api_logger.info("Retrieving raw document", extra={"key": key, "version": version})
    revision = await run_in_threadpool(service.read_document, key, version, token)
    if len(revision.files) == 1:
        return await run_in_threadpool(raw_file_response, service, revision.files[0], language, formatter, style)
    return await run_in_threadpool(raw_multipart_response, service, list(revision.files), language, formatter, style)


@router.get("/{key}")
async def get_raw_document(
        key: str,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    return await _raw_document(service, key, None, token, language, formatter or render, style)


@router.get("/{key}/versions/{version}")
async def get_raw_document_version(
        key: str,
        version: int,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    return await _raw_document(service, key, version, token, language, formatter or render, style)


@router.get("/{key}/files/{filename}")
async def get_raw_document_file(
        key: str,
        filename: str,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    api_logger.info("Retrieving raw document file", extra={"key": key, "file_name": filename})
    file = await run_in_threadpool(service.read_file, key, filename, None, token)
    return await run_in_threadpool(raw_file_response, service, file, language, formatter or render, style)
