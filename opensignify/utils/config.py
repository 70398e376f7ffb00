"""Application settings.

Values come from (highest priority first) keyword arguments, environment
variables prefixed with ``OPENSIGNIFY_``, a ``.env`` file, and the defaults
below. Directories default to the platform's per-user locations.

Environment Variables:
- OPENSIGNIFY_DATABASE_URL: SQLAlchemy URL (default: sqlite file in data_dir)
- OPENSIGNIFY_BASE_URL: Public origin used to build signing links
- OPENSIGNIFY_CURRENT_USER_ID: Identity used by the CLI when --as is omitted
- OPENSIGNIFY_SMTP_HOST: Enables SMTP delivery of signing requests when set
- OPENSIGNIFY_PDF_FONT_PATH: TrueType font used for PDF text
- OPENSIGNIFY_SUGGEST_PROVIDER: "history" (local) or "ollama"
"""

from pathlib import Path
from typing import Literal

from platformdirs import PlatformDirs
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

dirs = PlatformDirs("opensignify", appauthor=False)


class Settings(BaseSettings):
    """OpenSignify configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OPENSIGNIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    data_dir: Path = Field(default_factory=lambda: Path(dirs.user_data_dir))
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy database URL (defaults to a SQLite file in data_dir)",
    )
    output_dir: Path | None = Field(
        default=None,
        description="Where rendered PDFs are written (defaults to data_dir/documents)",
    )

    # Links & identity
    base_url: str = Field(
        default="http://localhost:3000",
        description="Origin used when building shareable signing links",
    )
    current_user_id: str | None = Field(
        default=None,
        description="Caller identity used by the CLI when none is given explicitly",
    )

    # Lifecycle
    max_number_attempts: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Invoice-number regenerations before giving up",
    )
    default_list_limit: int = Field(default=20, ge=1, le=500)

    # Documents
    pdf_font_path: Path | None = Field(
        default=None,
        description="TrueType font for PDF body text (e.g. DejaVuSans.ttf)",
    )
    pdf_bold_font_path: Path | None = None

    # Notifications
    smtp_host: str | None = None
    smtp_port: int = Field(default=465, ge=1, le=65535)
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_sender: str | None = None
    smtp_use_ssl: bool = True

    # Description suggestions
    suggest_provider: Literal["history", "ollama"] = "history"
    suggest_history_size: int = Field(default=50, ge=1, le=1000)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    ollama_timeout: int = Field(default=60, ge=1)

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False
    debug: bool = False

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    @property
    def resolved_database_url(self) -> str:
        """Database URL, falling back to a SQLite file under data_dir."""
        return self.database_url or f"sqlite:///{self.data_dir / 'opensignify.db'}"

    @property
    def documents_dir(self) -> Path:
        """Directory for rendered documents."""
        return self.output_dir or self.data_dir / "documents"

    @property
    def smtp_enabled(self) -> bool:
        """Whether enough SMTP settings are present to send real email."""
        return bool(self.smtp_host and self.smtp_sender)

    def ensure_dirs(self) -> None:
        """Create data and output directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.documents_dir.mkdir(parents=True, exist_ok=True)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Discard the cached settings and load them again from the environment."""
    global _settings
    _settings = Settings()
    return _settings
