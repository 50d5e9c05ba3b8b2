"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .errors import ConfigurationError

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
PACKAGE_DIR = Path(__file__).resolve().parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
PROMPTS_DIR = PACKAGE_DIR / "prompts"
DEFAULT_DB_PATH = DATA_DIR / "ci_anomaly.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"
DEFAULT_PROMPT_TEMPLATE_PATH = PROMPTS_DIR / "user.json"
DEFAULT_SYSTEM_PROMPT_PATH = PROMPTS_DIR / "system.st"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_resource_path(env_value: PathLike | None, default: Path) -> Path:
    """Resolve a prompt/resource path relative to the package directory."""
    if not env_value:
        return default

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PACKAGE_DIR.parent / candidate


@dataclass(frozen=True)
class Settings:
    """Static process configuration. Not mutable at runtime."""

    queue_name: str = "jenkins-logs"
    max_age_seconds: float = 420.0
    future_gap_seconds: float = 30.0
    prompt_template_path: Path = DEFAULT_PROMPT_TEMPLATE_PATH
    system_prompt_path: Path = DEFAULT_SYSTEM_PROMPT_PATH
    worker_count: int = 4
    queue_max_size: int = 1000
    ai_timeout_seconds: float = 120.0
    tracker_ttl_seconds: float = 900.0
    tracker_sweep_interval_seconds: float = 60.0
    history_limit: int = 100
    max_messages_per_conversation: int = 100
    prune_interval_seconds: float = 3600.0


def _env_number(
    name: str, default: float, cast: type = float, allow_zero: bool = False
) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if value < 0 or (value == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise ConfigurationError(f"{name} must be {bound}, got {raw!r}")
    return value


def load_settings() -> Settings:
    """
    Build Settings from environment variables.

    Raises:
        ConfigurationError: if a numeric variable is malformed or out of range.
    """
    return Settings(
        queue_name=os.getenv("QUEUE_NAME") or "jenkins-logs",
        max_age_seconds=_env_number("MAX_AGE_SECONDS", 420.0, allow_zero=True),
        future_gap_seconds=_env_number("FUTURE_GAP_SECONDS", 30.0, allow_zero=True),
        prompt_template_path=resolve_resource_path(
            os.getenv("PROMPT_TEMPLATE_PATH"), DEFAULT_PROMPT_TEMPLATE_PATH
        ),
        system_prompt_path=resolve_resource_path(
            os.getenv("SYSTEM_PROMPT_PATH"), DEFAULT_SYSTEM_PROMPT_PATH
        ),
        worker_count=_env_number("WORKER_COUNT", 4, int),
        queue_max_size=_env_number("QUEUE_MAX_SIZE", 1000, int),
        ai_timeout_seconds=_env_number("AI_TIMEOUT_SECONDS", 120.0),
        tracker_ttl_seconds=_env_number("TRACKER_TTL_SECONDS", 900.0),
        tracker_sweep_interval_seconds=_env_number(
            "TRACKER_SWEEP_INTERVAL_SECONDS", 60.0
        ),
        history_limit=_env_number("HISTORY_LIMIT", 100, int),
        max_messages_per_conversation=_env_number(
            "MAX_MESSAGES_PER_CONVERSATION", 100, int
        ),
        prune_interval_seconds=_env_number("PRUNE_INTERVAL_SECONDS", 3600.0),
    )
