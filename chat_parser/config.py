import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional


DEFAULT_MODELS = "gpt-4o-mini,gpt-4o,gpt-4"


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _database_url_from_env() -> Optional[str]:
    """DATABASE_URL wins; otherwise compose a Postgres URL when PG_HOST is set."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    pg_host = os.getenv("PG_HOST")
    if not pg_host:
        return None

    pg_port = os.getenv("PG_PORT", "5432")
    pg_user = os.getenv("PG_USER", "appuser")
    pg_password = os.getenv("PG_PASSWORD", "apppass")
    pg_db = os.getenv("PG_DB", "appdb")
    return f"postgresql://{pg_user}:{pg_password}@{pg_host}:{pg_port}/{pg_db}"


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration, read from the environment by `load_settings()`.
    """
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    candidate_models: List[str] = field(
        default_factory=lambda: DEFAULT_MODELS.split(",")
    )
    completion_timeout: float = 25.0
    max_tokens: int = 4000
    temperature: float = 0.1

    database_url: Optional[str] = None

    max_file_bytes: int = 100 * 1024
    max_content_chars: Optional[int] = 50_000       # None = unlimited
    max_sender_filter_length: int = 100

    app_env: str = "production"

    langfuse_public_key: Optional[str] = None
    langfuse_secret_key: Optional[str] = None
    langfuse_host: str = "http://langfuse:3000"

    data_dir: str = "data"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


def load_settings() -> Settings:
    models = [
        m.strip()
        for m in os.getenv("EXTRACTION_MODELS", DEFAULT_MODELS).split(",")
        if m.strip()
    ]
    max_chars = _int_env("MAX_CONTENT_CHARS", 50_000)

    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        candidate_models=models,
        completion_timeout=_float_env("COMPLETION_TIMEOUT", 25.0),
        max_tokens=_int_env("COMPLETION_MAX_TOKENS", 4000),
        temperature=_float_env("COMPLETION_TEMPERATURE", 0.1),
        database_url=_database_url_from_env(),
        max_file_bytes=_int_env("MAX_FILE_BYTES", 100 * 1024),
        max_content_chars=max_chars if max_chars > 0 else None,
        max_sender_filter_length=_int_env("MAX_SENDER_FILTER_LENGTH", 100),
        app_env=os.getenv("APP_ENV", "production"),
        langfuse_public_key=os.getenv("LANGFUSE_PUBLIC_KEY") or None,
        langfuse_secret_key=os.getenv("LANGFUSE_SECRET_KEY") or None,
        langfuse_host=os.getenv("LANGFUSE_HOST", "http://langfuse:3000"),
        data_dir=os.getenv("DATA_DIR", "data"),
    )


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
