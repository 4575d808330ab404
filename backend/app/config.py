import json
import os
import threading
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field


load_dotenv()

STATE_BACKENDS = frozenset({"memory", "redis"})


def _positive_int(name: str, default: int) -> int:
    value = int(os.getenv(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be greater than 0")
    return value


def _positive_float(name: str, default: float) -> float:
    value = float(os.getenv(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be greater than 0")
    return value


def _parse_allowed_origins(raw_allowed_origins: str) -> list[str]:
    # Support both CSV format and JSON array format
    allowed_origins: list[str] = []
    if raw_allowed_origins.startswith("["):
        try:
            parsed_list = json.loads(raw_allowed_origins)
        except json.JSONDecodeError as exc:
            raise ValueError(f"ALLOWED_ORIGINS JSON is malformed: {exc}") from exc
        if not isinstance(parsed_list, list):
            raise ValueError("ALLOWED_ORIGINS JSON must be an array")
        allowed_origins = [
            origin.strip() for origin in parsed_list if isinstance(origin, str) and origin.strip()
        ]
    else:
        allowed_origins = [
            origin.strip() for origin in raw_allowed_origins.split(",") if origin.strip()
        ]

    if not allowed_origins:
        raise ValueError("ALLOWED_ORIGINS must contain at least one origin")

    if "*" in allowed_origins:
        raise ValueError(
            "ALLOWED_ORIGINS cannot contain '*' when credentialed requests are used"
        )

    for origin in allowed_origins:
        parsed = urlparse(origin)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "ALLOWED_ORIGINS must contain valid http/https origins with host"
            )
    return allowed_origins


class Settings(BaseModel):
    app_name: str = Field(default="OurSociety Backend")
    debug: bool = Field(default=False)
    database_url: str = Field(default="")
    redis_url: str = Field(default="redis://localhost:6379/0")
    state_backend: str = Field(default="memory")
    allowed_origins: list[str] = Field(default_factory=list)
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_recycle: int = Field(default=1800)
    db_pool_pre_ping: bool = Field(default=True)
    identity_verification_key: str | None = Field(default=None)
    identity_algorithm: str = Field(default="RS256")
    identity_issuer: str | None = Field(default=None)
    identity_audience: str | None = Field(default=None)
    auth_timeout_seconds: float = Field(default=5.0)
    session_ttl_seconds: int = Field(default=24 * 60 * 60)
    sweep_interval_seconds: int = Field(default=60 * 60)

    @classmethod
    def from_env(cls) -> "Settings":
        # Clerk-style PEM keys are usually stored with escaped newlines
        verification_key = os.getenv("IDENTITY_VERIFICATION_KEY", "").strip().replace("\\n", "\n")
        if not verification_key:
            raise ValueError("IDENTITY_VERIFICATION_KEY environment variable must be set")

        raw_allowed_origins = os.getenv("ALLOWED_ORIGINS", "").strip()
        if not raw_allowed_origins:
            raise ValueError("ALLOWED_ORIGINS environment variable must be set")
        allowed_origins = _parse_allowed_origins(raw_allowed_origins)

        database_url = os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            raise ValueError("DATABASE_URL environment variable must be set")

        parsed_db = urlparse(database_url)
        if parsed_db.scheme != "postgresql+asyncpg":
            raise ValueError("DATABASE_URL must start with 'postgresql+asyncpg://'")
        if not parsed_db.hostname:
            raise ValueError("DATABASE_URL must include hostname")

        db_pool_size = _positive_int("DB_POOL_SIZE", cls.model_fields["db_pool_size"].default)

        db_max_overflow = int(
            os.getenv("DB_MAX_OVERFLOW", cls.model_fields["db_max_overflow"].default)
        )
        if db_max_overflow < 0:
            raise ValueError("DB_MAX_OVERFLOW must be greater than or equal to 0")

        db_pool_recycle = _positive_int(
            "DB_POOL_RECYCLE", cls.model_fields["db_pool_recycle"].default
        )

        raw_db_pool_pre_ping = os.getenv(
            "DB_POOL_PRE_PING", str(cls.model_fields["db_pool_pre_ping"].default)
        ).strip().lower()
        if raw_db_pool_pre_ping in {"1", "true", "yes", "on"}:
            db_pool_pre_ping = True
        elif raw_db_pool_pre_ping in {"0", "false", "no", "off"}:
            db_pool_pre_ping = False
        else:
            raise ValueError("DB_POOL_PRE_PING must be a boolean value")

        state_backend = os.getenv(
            "STATE_BACKEND", cls.model_fields["state_backend"].default
        ).strip().lower()
        if state_backend not in STATE_BACKENDS:
            raise ValueError(
                f"STATE_BACKEND must be one of: {', '.join(sorted(STATE_BACKENDS))}"
            )

        redis_url = os.getenv("REDIS_URL", cls.model_fields["redis_url"].default).strip()
        if state_backend == "redis" and not redis_url:
            raise ValueError("REDIS_URL must be set when STATE_BACKEND=redis")

        return cls(
            app_name=os.getenv("APP_NAME", cls.model_fields["app_name"].default),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            database_url=database_url,
            redis_url=redis_url,
            state_backend=state_backend,
            allowed_origins=allowed_origins,
            identity_verification_key=verification_key,
            identity_algorithm=os.getenv(
                "IDENTITY_ALGORITHM", cls.model_fields["identity_algorithm"].default
            ).strip(),
            identity_issuer=os.getenv("IDENTITY_ISSUER", "").strip() or None,
            identity_audience=os.getenv("IDENTITY_AUDIENCE", "").strip() or None,
            auth_timeout_seconds=_positive_float(
                "AUTH_TIMEOUT_SECONDS", cls.model_fields["auth_timeout_seconds"].default
            ),
            session_ttl_seconds=_positive_int(
                "SESSION_TTL_SECONDS", cls.model_fields["session_ttl_seconds"].default
            ),
            sweep_interval_seconds=_positive_int(
                "SWEEP_INTERVAL_SECONDS", cls.model_fields["sweep_interval_seconds"].default
            ),
            db_pool_size=db_pool_size,
            db_max_overflow=db_max_overflow,
            db_pool_recycle=db_pool_recycle,
            db_pool_pre_ping=db_pool_pre_ping,
        )


# Settings are created on first access so the module imports without a full environment
_settings_instance: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get settings instance, creating it on first access.

    Uses double-checked locking so concurrent first accesses build a single
    instance.

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    global _settings_instance

    if _settings_instance is not None:
        return _settings_instance

    with _settings_lock:
        if _settings_instance is None:
            _settings_instance = Settings.from_env()

    return _settings_instance


class _SettingsProxy:
    """Proxy to defer settings creation until first attribute access."""

    def __getattr__(self, name: str):
        return getattr(get_settings(), name)


settings = _SettingsProxy()  # type: ignore[assignment]
