"""Engine configuration loaded from environment variables."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

TRUTHY = ("true", "1", "yes")
LLM_PROVIDERS = ("openai", "anthropic")


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() in TRUTHY


@dataclass(frozen=True)
class Config:
    """Engine configuration."""

    # Service settings
    host: str
    port: int
    database_url: str
    admin_token: str | None
    log_level: str
    log_format: str

    # Uniqueness settings
    dislike_cooldown_hours: float
    min_batch_threshold: int

    # History provenances
    local_history_dir: str | None
    remote_history_url: str | None
    remote_history_timeout_seconds: float

    # Profile / refinement settings
    profile_window: int
    recent_feedback_limit: int
    refinement_local_fallback: bool
    refinement_queue_size: int
    refinement_workers: int

    # LLM inference settings
    llm_enabled: bool
    llm_provider: str
    openai_api_key: str | None
    openai_model: str
    anthropic_api_key: str | None
    anthropic_model: str
    inference_timeout_seconds: float

    # Periodic preference refresh
    pref_refresh_enabled: bool
    pref_refresh_interval_hours: int
    pref_refresh_lookback_hours: int

    @property
    def inference_configured(self) -> bool:
        """Whether an inference provider has credentials and is switched on."""
        if not self.llm_enabled:
            return False
        if self.llm_provider == "anthropic":
            return bool(self.anthropic_api_key)
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        port_str = os.getenv("PORT", "8000")
        try:
            port = int(port_str)
        except ValueError:
            raise ConfigurationError(f"PORT must be an integer, got: {port_str}")

        anthropic_api_key = os.getenv("ANTHROPIC_API_KEY") or None
        llm_provider = os.getenv(
            "LLM_PROVIDER", "anthropic" if anthropic_api_key else "openai"
        ).lower()
        if llm_provider not in LLM_PROVIDERS:
            raise ConfigurationError(
                f"LLM_PROVIDER must be one of {', '.join(LLM_PROVIDERS)}, got: {llm_provider}"
            )

        min_batch_threshold = _int_env("MIN_BATCH_THRESHOLD", 3)
        if min_batch_threshold < 0:
            raise ConfigurationError("MIN_BATCH_THRESHOLD must not be negative")

        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=port,
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./tasteloop.db"),
            admin_token=os.getenv("ADMIN_TOKEN") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "plain").lower(),
            dislike_cooldown_hours=_float_env("DISLIKE_COOLDOWN_HOURS", 24.0),
            min_batch_threshold=min_batch_threshold,
            local_history_dir=os.getenv("LOCAL_HISTORY_DIR") or None,
            remote_history_url=os.getenv("REMOTE_HISTORY_URL") or None,
            remote_history_timeout_seconds=_float_env("REMOTE_HISTORY_TIMEOUT_SECONDS", 5.0),
            profile_window=_int_env("PROFILE_WINDOW", 100),
            recent_feedback_limit=_int_env("RECENT_FEEDBACK_LIMIT", 10),
            refinement_local_fallback=_bool_env("REFINEMENT_LOCAL_FALLBACK", False),
            refinement_queue_size=_int_env("REFINEMENT_QUEUE_SIZE", 100),
            refinement_workers=_int_env("REFINEMENT_WORKERS", 2),
            llm_enabled=_bool_env("LLM_ENABLED", True),
            llm_provider=llm_provider,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4.1-mini"),
            anthropic_api_key=anthropic_api_key,
            anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-haiku-4-5-20251001"),
            inference_timeout_seconds=_float_env("INFERENCE_TIMEOUT_SECONDS", 20.0),
            pref_refresh_enabled=_bool_env("PREF_REFRESH_ENABLED", True),
            pref_refresh_interval_hours=_int_env("PREF_REFRESH_INTERVAL_HOURS", 6),
            pref_refresh_lookback_hours=_int_env("PREF_REFRESH_LOOKBACK_HOURS", 24),
        )


config = Config.from_env()
