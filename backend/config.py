"""Application configuration using pydantic-settings."""

from typing import Any, Optional

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./finsight.db"

    # Public URL of the web app (callback return_to and dashboard redirects)
    APP_BASE_URL: str = "http://localhost:3000"

    # Salt Edge credentials
    SALTEDGE_BASE_URL: str = "https://www.saltedge.com/api/v6"
    SALTEDGE_APP_ID: str = ""
    SALTEDGE_SECRET: str = ""
    SALTEDGE_PRIVATE_KEY: str = ""  # PEM, signs outbound requests
    SALTEDGE_PUBLIC_KEY: str = ""  # PEM, verifies inbound webhooks

    # "pending" (sandbox/restricted) or "live" (full access)
    SALTEDGE_STATUS: str = "pending"
    # None means "strict when SALTEDGE_STATUS is live"
    SALTEDGE_WEBHOOK_STRICT: Optional[bool] = None

    SALTEDGE_LOCALE: str = "fr"
    SALTEDGE_POPULAR_COUNTRY: str = "FR"
    SALTEDGE_RATE_LIMIT_PENDING: int = 15
    SALTEDGE_RATE_LIMIT_LIVE: int = 50
    SALTEDGE_CUSTOMER_CACHE_TTL_HOURS: float = 24
    SALTEDGE_TIMEOUT_SECONDS: float = 30.0

    CUSTOMER_IDENTIFIER_PREFIX: str = "finsight"
    SYNC_MAX_ATTEMPTS: int = 2

    @field_validator("SALTEDGE_PRIVATE_KEY", "SALTEDGE_PUBLIC_KEY", mode="before")
    @classmethod
    def normalize_pem_newlines(cls, v: str) -> str:
        """Convert literal ``\\n`` sequences to real newlines in PEM keys.

        When set via shell ``export``, ``\\n`` stays as a literal two-char
        sequence. python-dotenv already converts ``\\n`` inside double-quoted
        ``.env`` values, so this handles the shell-export case.
        """
        if isinstance(v, str) and "\\n" in v:
            v = v.replace("\\n", "\n")
        return v

    @field_validator("SALTEDGE_STATUS", mode="before")
    @classmethod
    def validate_saltedge_status(cls, v: str) -> str:
        """Normalize SALTEDGE_STATUS to ``pending`` or ``live``."""
        value = str(v).strip().lower()
        if value not in {"pending", "live"}:
            raise ValueError(f"SALTEDGE_STATUS must be 'pending' or 'live', got {v!r}")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @property
    def saltedge_live(self) -> bool:
        """True when running against the aggregator with full access."""
        return self.SALTEDGE_STATUS == "live"

    @property
    def webhook_strict(self) -> bool:
        """Whether a failed webhook signature must reject the request."""
        if self.SALTEDGE_WEBHOOK_STRICT is not None:
            return self.SALTEDGE_WEBHOOK_STRICT
        return self.saltedge_live

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
