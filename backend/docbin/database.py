# backend/docbin/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from .config import settings
from .utils.logging import db_logger

SQLALCHEMY_DATABASE_URL = str(settings.DATABASE_URL)
db_logger.info(f"Connecting to database: {SQLALCHEMY_DATABASE_URL}")


def build_engine(url: str, **kwargs):
    """Create an engine, applying the sqlite specific connect arguments when needed"""
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": settings.DB_TIMEOUT, **connect_args}
    return create_engine(url, connect_args=connect_args, echo=False, **kwargs)


engine = build_engine(SQLALCHEMY_DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

Base = declarative_base()
