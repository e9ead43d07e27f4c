# backend/docbin/api/documents.py
import time
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..errors import DocbinError, InvalidInput
from ..schemas.document import DocumentResponse, ResponseFile, ShareRequest, ShareResponse, VersionResponse
from ..schemas.revision import FileData, Revision
from ..services.documents import DocumentService
from ..services.tokens import Permission
from ..services.webhooks import WebhookDispatcher
from ..utils.files import parse_document_files
from ..utils.logging import api_logger
from .deps import get_document_service, get_token, get_webhook_dispatcher

router = APIRouter(prefix="/documents", tags=["documents"])

VERSION_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def version_label(version: int, latest: int) -> str:
    if version == latest:
        return f"v{version} (current)"
    if version == 0:
        return f"v{version} (original)"
    return f"v{version}"


def build_document_response(
        service: DocumentService,
        revision: Revision,
        latest: int,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = None
) -> DocumentResponse:
    """Render every file of a revision and wrap it in the JSON envelope, first file at the top level"""
    files = []
    css = None
    for file in revision.files:
        rendered = service.render_file(file, language, formatter, style)
        css = css or rendered.css
        files.append(ResponseFile(
            name=file.name,
            content=file.content,
            formatted=rendered.formatted,
            language=rendered.language
        ))

    first = files[0]
    return DocumentResponse(
        key=revision.document_key,
        version=revision.version,
        version_label=version_label(revision.version, latest),
        version_time=revision.created_at.strftime(VERSION_TIME_FORMAT),
        data=first.content,
        formatted=first.formatted,
        css=css,
        language=first.language,
        token=token,
        expires_at=revision.expires_at,
        files=files
    )


def build_file_response(
        service: DocumentService,
        file: FileData,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        style: Optional[str] = None
) -> ResponseFile:
    rendered = service.render_file(file, language, formatter, style)
    return ResponseFile(name=file.name, content=file.content, formatted=rendered.formatted, language=rendered.language)


def parse_permissions(names: List[str]) -> Permission:
    try:
        return Permission.parse(names)
    except ValueError as e:
        raise InvalidInput(str(e)) from e


@router.post("", response_model=DocumentResponse, response_model_exclude_none=True, status_code=status.HTTP_201_CREATED)
async def create_document(
        request: Request,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        service: DocumentService = Depends(get_document_service)
):
    files, expires_at = await parse_document_files(request, settings.MAX_DOCUMENT_SIZE)
    api_logger.info("Creating new document", extra={
        "file_count": len(files),
        "expires_at": expires_at.isoformat() if expires_at else None
    })

    try:
        start_time = time.time()
        created = await run_in_threadpool(service.create_document, files, expires_at)
        response = await run_in_threadpool(
            build_document_response,
            service,
            created.revision,
            created.revision.version,
            None,
            formatter or render,
            style,
            created.token
        )

        api_logger.info("Successfully created document", extra={
            "key": created.revision.document_key,
            "execution_time_ms": round((time.time() - start_time) * 1000, 2)
        })
        return response

    except DocbinError:
        raise
    except Exception as e:
        api_logger.error("Error creating document", extra={"error": str(e)})
        raise


async def _read_document(
        service: DocumentService,
        key: str,
        version: Optional[int],
        token: Optional[str],
        language: Optional[str],
        formatter: Optional[str],
        style: Optional[str]
) -> DocumentResponse:
    api_logger.info("Retrieving document", extra={"key": key, "version": version})

    start_time = time.time()
    revision = await run_in_threadpool(service.read_document, key, version, token)
    if version is None:
        latest = revision.version
    else:
        versions = await run_in_threadpool(service.list_versions, key, token)
        latest = versions[0].version if versions else revision.version

    response = await run_in_threadpool(
        build_document_response, service, revision, latest, language, formatter, style
    )
    api_logger.info("Successfully retrieved document", extra={
        "key": key,
        "version": revision.version,
        "execution_time_ms": round((time.time() - start_time) * 1000, 2)
    })
    return response


@router.get("/{key}", response_model=DocumentResponse, response_model_exclude_none=True)
async def get_document(
        key: str,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    return await _read_document(service, key, None, token, language, formatter or render, style)


@router.get("/{key}/versions", response_model=List[VersionResponse])
async def list_document_versions(
        key: str,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    api_logger.info("Listing document versions", extra={"key": key})
    versions = await run_in_threadpool(service.list_versions, key, token)
    latest = versions[0].version if versions else 0
    return [
        VersionResponse(
            version=info.version,
            version_label=version_label(info.version, latest),
            version_time=info.created_at.strftime(VERSION_TIME_FORMAT)
        )
        for info in versions
    ]


@router.get("/{key}/versions/{version}", response_model=DocumentResponse, response_model_exclude_none=True)
async def get_document_version(
        key: str,
        version: int,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    return await _read_document(service, key, version, token, language, formatter or render, style)


async def _read_file(
        service: DocumentService,
        key: str,
        filename: str,
        version: Optional[int],
        token: Optional[str],
        language: Optional[str],
        formatter: Optional[str],
        style: Optional[str]
) -> ResponseFile:
    api_logger.info("Retrieving document file", extra={"key": key, "version": version, "file_name": filename})
    file = await run_in_threadpool(service.read_file, key, filename, version, token)
    return await run_in_threadpool(build_file_response, service, file, language, formatter, style)


@router.get("/{key}/files/{filename}", response_model=ResponseFile, response_model_exclude_none=True)
async def get_document_file(
        key: str,
        filename: str,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    return await _read_file(service, key, filename, None, token, language, formatter or render, style)


@router.get("/{key}/versions/{version}/files/{filename}", response_model=ResponseFile, response_model_exclude_none=True)
async def get_document_version_file(
        key: str,
        version: int,
        filename: str,
        language: Optional[str] = None,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    return await _read_file(service, key, filename, version, token, language, formatter or render, style)


@router.patch("/{key}", response_model=DocumentResponse, response_model_exclude_none=True)
async def update_document(
        key: str,
        request: Request,
        background_tasks: BackgroundTasks,
        formatter: Optional[str] = None,
        render: Optional[str] = None,
        style: Optional[str] = None,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service),
        dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher)
):
    files, expires_at = await parse_document_files(request, settings.MAX_DOCUMENT_SIZE)
    api_logger.info("Updating document", extra={
        "key": key,
        "file_count": len(files),
        "expires_at": expires_at.isoformat() if expires_at else None
    })

    try:
        start_time = time.time()
        write = await run_in_threadpool(service.update_document, key, token, files, expires_at)
        if write.webhooks:
            background_tasks.add_task(dispatcher.dispatch, "update", write.revision, write.webhooks)

        response = await run_in_threadpool(
            build_document_response,
            service,
            write.revision,
            write.revision.version,
            None,
            formatter or render,
            style
        )
        api_logger.info("Successfully updated document", extra={
            "key": key,
            "version": write.revision.version,
            "execution_time_ms": round((time.time() - start_time) * 1000, 2)
        })
        return response

    except DocbinError as e:
        api_logger.warning("Document update rejected", extra={"key": key, "error": e.message})
        raise
    except Exception as e:
        api_logger.error("Error updating document", extra={"key": key, "error": str(e)})
        raise


@router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
        key: str,
        background_tasks: BackgroundTasks,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service),
        dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher)
):
    api_logger.info("Deleting document", extra={"key": key})

    try:
        write = await run_in_threadpool(service.delete_document, key, token)
        if write.webhooks:
            background_tasks.add_task(dispatcher.dispatch, "delete", write.revision, write.webhooks)

        api_logger.info(f"Successfully deleted document {key}")
        return Response(status_code=status.HTTP_204_NO_CONTENT, background=background_tasks)

    except DocbinError as e:
        api_logger.warning("Document deletion rejected", extra={"key": key, "error": e.message})
        raise
    except Exception as e:
        api_logger.error(f"Failed to delete document: {str(e)}")
        raise


@router.post("/{key}/share", response_model=ShareResponse)
async def share_document(
        key: str,
        share: ShareRequest,
        token: Optional[str] = Depends(get_token),
        service: DocumentService = Depends(get_document_service)
):
    api_logger.info("Sharing document", extra={"key": key, "permissions": share.permissions})

    permissions = parse_permissions(share.permissions)
    derived = await run_in_threadpool(service.share_document, key, token, permissions)
    return ShareResponse(token=derived)
