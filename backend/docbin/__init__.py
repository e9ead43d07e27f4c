# backend/docbin/__init__.py
from .config import settings
from .database import Base, engine, SessionLocal
from . import models
from . import schemas
from . import services

__version__ = "0.1.0"
