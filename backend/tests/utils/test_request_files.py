# tests/utils/test_request_files.py
import io
from datetime import datetime, timezone

import pytest
from starlette.datastructures import Headers, UploadFile

from docbin.errors import InvalidInput, PayloadTooLarge
from docbin.utils.files import (
    content_disposition,
    decode_content,
    filename_from_disposition,
    media_type,
    parse_expires,
    read_upload_file,
)


@pytest.fixture
def mock_upload_file():
    def _create_upload_file(filename: str, content: bytes, headers: dict = None):
        return UploadFile(file=io.BytesIO(content), filename=filename, headers=Headers(headers or {}))
    return _create_upload_file


def test_parse_expires():
    assert parse_expires(None) is None
    assert parse_expires("2030-01-02T03:04:05") == datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_expires("2030-01-02T05:04:05+02:00") == datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    with pytest.raises(InvalidInput):
        parse_expires("next week")


def test_media_type():
    assert media_type("Multipart/Form-Data; boundary=abc") == "multipart/form-data"
    assert media_type("text/plain; charset=utf-8") == "text/plain"


def test_filename_from_disposition():
    assert filename_from_disposition('inline; filename="hello.py"') == "hello.py"
    assert filename_from_disposition("attachment; filename*=utf-8''%E6%97%A5.txt") == "日.txt"
    assert filename_from_disposition("inline") is None
    assert filename_from_disposition(None) is None


def test_content_disposition():
    assert content_disposition("inline", "a.py") == 'inline; filename="a.py"'
    assert content_disposition("inline", "日.txt") == "inline; filename*=utf-8''%E6%97%A5.txt"


def test_decode_content():
    assert decode_content("héllo".encode()) == "héllo"
    with pytest.raises(PayloadTooLarge):
        decode_content(b"12345", max_size=4)
    with pytest.raises(InvalidInput):
        decode_content(b"")
    with pytest.raises(InvalidInput):
        decode_content(b"\xff\xfe\xfa")


@pytest.mark.asyncio
async def test_read_upload_file(mock_upload_file):
    upload_file = mock_upload_file("test.txt", b"test file content")
    assert await read_upload_file(upload_file) == "test file content"


@pytest.mark.asyncio
async def test_read_upload_file_too_large(mock_upload_file):
    upload_file = mock_upload_file("test.txt", b"x" * 100)
    with pytest.raises(PayloadTooLarge):
        await read_upload_file(upload_file, max_size=10)
