# tests/conftest.py
import os

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from docbin.api.deps import get_document_service, get_webhook_dispatcher
from docbin.config import settings
from docbin.database import Base
from docbin.main import app
from docbin.schemas.revision import FileData
from docbin.services.documents import DocumentService
from docbin.services.keys import KeyGenerator
from docbin.services.render import PygmentsRenderer
from docbin.services.store import VersionStore
from docbin.services.tokens import TokenService
from docbin.services.webhooks import WebhookDispatcher, WebhookService

# Create test database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
TEST_JWT_SECRET = "test-secret"


@pytest.fixture
def engine():
    """In-memory database with fresh tables for every test"""
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool  # Needed for SQLite in-memory database
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return VersionStore(session_factory, lock_timeout=5)


@pytest.fixture
def tokens():
    return TokenService(TEST_JWT_SECRET, issuer="docbin")


@pytest.fixture
def webhook_service(session_factory):
    return WebhookService(session_factory)


@pytest.fixture
def document_service(store, tokens, webhook_service):
    return DocumentService(
        store=store,
        tokens=tokens,
        keys=KeyGenerator(),
        renderer=PygmentsRenderer(),
        webhooks=webhook_service
    )


@pytest.fixture
def webhook_requests():
    """Requests received by the fake webhook endpoint"""
    return []


@pytest.fixture
def dispatcher(webhook_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        webhook_requests.append(request)
        return httpx.Response(200)

    return WebhookDispatcher(max_tries=1, backoff=0, transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def override_settings():
    """Override settings for testing"""
    original_interval = settings.CLEANUP_INTERVAL
    original_max_size = settings.MAX_DOCUMENT_SIZE

    settings.CLEANUP_INTERVAL = 0
    settings.MAX_DOCUMENT_SIZE = 0

    yield

    settings.CLEANUP_INTERVAL = original_interval
    settings.MAX_DOCUMENT_SIZE = original_max_size


@pytest.fixture
def client(document_service, dispatcher):
    """Test client wired to the test database"""
    app.dependency_overrides[get_document_service] = lambda: document_service
    app.dependency_overrides[get_webhook_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_files():
    return [FileData(name="hello.py", content="print('hi')", language="python")]


@pytest.fixture
def sample_document(document_service, sample_files):
    """A stored document together with its root token"""
    return document_service.create_document(sample_files)


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_files():
    """Remove the database file the app creates on startup"""
    yield
    for file in ["docbin.db"]:
        if os.path.exists(file):
            os.remove(file)
