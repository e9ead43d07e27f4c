# backend/docbin/config.py
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./docbin.db"  # Default if not in .env
    DB_TIMEOUT: float = 5.0  # seconds a connection waits on a locked database
    LOCK_TIMEOUT: float = 10.0  # seconds a writer waits for the per-key lock

    # Storage Paths
    STORAGE_PATH: Path = Path("storage")
    LOGS_PATH: Path | None = None  # Will be set based on STORAGE_PATH

    # Tokens
    JWT_SECRET: str = "CHANGE_ME_FOR_PROD"
    JWT_ISSUER: str = "docbin"
    ROOT_TOKEN_TTL: Optional[int] = None  # seconds, None keeps root tokens valid for the document's lifetime

    # Keys
    KEY_LENGTH: int = 8
    KEY_MAX_TRIES: int = 10

    # Documents
    MAX_DOCUMENT_SIZE: int = 0  # bytes per file, 0 disables the limit
    MAX_HIGHLIGHT_SIZE: int = 0  # characters, larger files are rendered as plain text
    DEFAULT_STYLE: str = "monokai"
    PRIVATE_READS: bool = False

    # Expiry
    EXPIRE_AFTER: int = 0  # seconds since the last revision, 0 disables age based expiry
    CLEANUP_INTERVAL: int = 600  # seconds between expiry sweeps, 0 disables the sweeper

    # Webhooks
    WEBHOOK_TIMEOUT: float = 10.0
    WEBHOOK_MAX_TRIES: int = 3
    WEBHOOK_BACKOFF: float = 1.0
    WEBHOOK_BACKOFF_FACTOR: float = 2.0
    WEBHOOK_MAX_BACKOFF: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def model_post_init(self, __context) -> None:
        """Post initialization hook to set derived paths"""
        if isinstance(self.STORAGE_PATH, str):
            self.STORAGE_PATH = Path(self.STORAGE_PATH)

        self.LOGS_PATH = Path(self.LOGS_PATH) if self.LOGS_PATH else self.STORAGE_PATH / "logs"

        self.create_storage_dirs()

    def create_storage_dirs(self) -> None:
        """Create necessary storage directories if they don't exist"""
        for path in [self.STORAGE_PATH, self.LOGS_PATH]:
            path.mkdir(parents=True, exist_ok=True)

settings = Settings()
