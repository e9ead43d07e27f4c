# backend/docbin/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__, models
from .api import documents, raw, webhooks
from .api.deps import get_document_service
from .config import settings
from .database import engine
from .errors import DocbinError
from .services.cleanup import CleanupService
from .utils.logging import api_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create all tables on startup
    models.Base.metadata.create_all(bind=engine)

    service_factory = app.dependency_overrides.get(get_document_service, get_document_service)
    cleanup = CleanupService(
        service_factory().store,
        interval=settings.CLEANUP_INTERVAL,
        expire_after=settings.EXPIRE_AFTER
    )
    cleanup.start()
    try:
        yield
    finally:
        await cleanup.stop()


app = FastAPI(title="docbin API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Type", "Content-Length", "Content-Disposition", "Language"],
)

# Include routers
app.include_router(documents.router)
app.include_router(webhooks.router)
app.include_router(raw.router)


def error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"message": message, "status": status_code, "path": request.url.path},
    )


@app.exception_handler(DocbinError)
async def docbin_error_handler(request: Request, exc: DocbinError):
    if exc.status_code >= 500:
        api_logger.error("Request failed", extra={"path": request.url.path, "error": exc.message})
    else:
        api_logger.warning("Request rejected", extra={
            "path": request.url.path,
            "status": exc.status_code,
            "error": exc.message
        })
    return error_response(request, exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return error_response(request, 400, message or "invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(request, exc.status_code, str(exc.detail))


@app.get("/")
async def root():
    return {"message": "docbin API is running"}


@app.get("/ping")
async def ping():
    return {"message": "pong"}


@app.get("/version")
async def version():
    return {"version": __version__}
