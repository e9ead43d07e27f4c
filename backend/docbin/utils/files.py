# backend/docbin/utils/files.py
from datetime import datetime, timezone
from email.message import Message
from typing import List, Optional, Tuple
from urllib.parse import quote

from fastapi import Request
from starlette.datastructures import UploadFile

from ..errors import InvalidInput, PayloadTooLarge
from ..schemas.revision import FileData

DEFAULT_FILE_NAME = "untitled"


def parse_expires(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC"""
    if not value:
        return None
    try:
        expires_at = datetime.fromisoformat(value.strip())
    except ValueError:
        raise InvalidInput(f"failed to parse expires value: {value}") from None
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at


def media_type(value: str) -> str:
    """Content-Type header without its parameters, lower cased"""
    message = Message()
    message["content-type"] = value
    return message.get_content_type()


def filename_from_disposition(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    message = Message()
    message["content-disposition"] = value
    return message.get_filename()


def content_disposition(disposition: str, filename: str) -> str:
    """Header value safe for non-ascii file names"""
    try:
        filename.encode("latin-1")
    except UnicodeEncodeError:
        return f"{disposition}; filename*=utf-8''{quote(filename)}"
    escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
    return f'{disposition}; filename="{escaped}"'


def decode_content(data: bytes, max_size: int = 0) -> str:
    if max_size and len(data) > max_size:
        raise PayloadTooLarge(f"document too large, must be less than {max_size} bytes")
    if not data:
        raise InvalidInput("invalid document file content")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidInput("document content must be UTF-8 text") from None


async def read_upload_file(upload_file: UploadFile, max_size: int = 0) -> str:
    """Read one multipart part, refusing to buffer more than ``max_size`` bytes"""
    data = await upload_file.read(max_size + 1 if max_size else -1)
    return decode_content(data, max_size)


async def parse_document_files(request: Request, max_size: int = 0) -> Tuple[List[FileData], Optional[datetime]]:
    """Read the files of a POST/PATCH body.

    A ``multipart/form-data`` body carries one file per part, named
    ``file-0``, ``file-1``... in order; any other body is a single file whose
    name comes from ``Content-Disposition``. The language hint comes from the
    ``language`` query parameter or the ``Language`` header (per part for
    multipart bodies), and the expiry from ``expires`` / ``Expires``.
    """
    query = request.query_params
    expires_at = parse_expires(query.get("expires") or request.headers.get("Expires"))

    content_type = ""
    if request.headers.get("Content-Type"):
        content_type = media_type(request.headers["Content-Type"])

    files: List[FileData] = []
    if content_type == "multipart/form-data":
        form = await request.form()
        try:
            for index, (name, value) in enumerate(form.multi_items()):
                if name != f"file-{index}":
                    raise InvalidInput("invalid multipart part name")
                if not isinstance(value, UploadFile) or not value.filename:
                    raise InvalidInput("invalid document file name")

                content = await read_upload_file(value, max_size)
                part_expires = parse_expires(value.headers.get("Expires"))
                if part_expires is not None:
                    expires_at = part_expires

                files.append(FileData(
                    name=value.filename,
                    content=content,
                    language=value.headers.get("Language") or query.get("language") or "auto"
                ))
        finally:
            await form.close()
    else:
        content = decode_content(await request.body(), max_size)
        name = filename_from_disposition(request.headers.get("Content-Disposition"))
        files.append(FileData(
            name=name or DEFAULT_FILE_NAME,
            content=content,
            language=query.get("language") or request.headers.get("Language") or "auto"
        ))

    if not files:
        raise InvalidInput("empty request body")
    return files, expires_at
