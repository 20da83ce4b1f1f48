"""
Configuration loading for the rules search service.

Values come from the process environment (optionally a .env file) and are read
exactly once, at start-up, into an immutable Settings object. Components receive
the values they need through their constructors so tests can pass fakes.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

DEFAULT_ALLOWED_ORIGINS = (
    "https://myk9q.com",
    "https://www.myk9q.com",
    "https://app.myk9q.com",
    "http://localhost:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5173",
)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class Settings:
    """Runtime configuration. Empty strings mean "not configured"."""

    # Language model
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-haiku-20240307"
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"
    llm_timeout_seconds: float = 8.0
    interpret_max_tokens: int = 200
    answer_max_tokens: int = 300
    llm_budget_max_calls: int = 60
    llm_budget_window_seconds: float = 60.0
    answer_extraction_enabled: bool = True

    # Azure AI Search
    search_endpoint: str = ""
    search_api_key: str = ""
    search_index_name: str = "rules-index"
    search_connect_timeout_seconds: float = 3.0
    search_timeout_seconds: float = 5.0
    search_retry_total: int = 1
    default_result_limit: int = 5
    max_result_limit: int = 20

    # Cosmos DB query log (optional)
    cosmos_endpoint: str = ""
    cosmos_key: str = ""
    cosmos_database: str = "rules"
    cosmos_container: str = "rules-query-log"

    # HTTP surface
    service_tokens: Tuple[str, ...] = ()
    allowed_origins: Tuple[str, ...] = field(default=DEFAULT_ALLOWED_ORIGINS)
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


def _get_str(env: Mapping[str, str], key: str, default: str = "") -> str:
    value = env.get(key)
    if value is None:
        return default
    return value.strip() or default


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _get_str(env, key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = _get_str(env, key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _get_str(env, key).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _get_list(env: Mapping[str, str], key: str, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    raw = _get_str(env, key)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env: Mapping to read from. Defaults to os.environ after loading .env.

    Returns:
        Settings instance. Missing credentials are left empty here; the
        components that need them raise ConfigurationError when constructed.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    defaults = Settings()
    return Settings(
        anthropic_api_key=_get_str(env, "ANTHROPIC_API_KEY"),
        anthropic_model=_get_str(env, "ANTHROPIC_MODEL", defaults.anthropic_model),
        anthropic_base_url=_get_str(env, "ANTHROPIC_BASE_URL", defaults.anthropic_base_url),
        anthropic_version=_get_str(env, "ANTHROPIC_VERSION", defaults.anthropic_version),
        llm_timeout_seconds=_get_float(env, "LLM_TIMEOUT_SECONDS", defaults.llm_timeout_seconds),
        interpret_max_tokens=_get_int(env, "INTERPRET_MAX_TOKENS", defaults.interpret_max_tokens),
        answer_max_tokens=_get_int(env, "ANSWER_MAX_TOKENS", defaults.answer_max_tokens),
        llm_budget_max_calls=_get_int(env, "LLM_BUDGET_MAX_CALLS", defaults.llm_budget_max_calls),
        llm_budget_window_seconds=_get_float(
            env, "LLM_BUDGET_WINDOW_SECONDS", defaults.llm_budget_window_seconds
        ),
        answer_extraction_enabled=_get_bool(
            env, "ANSWER_EXTRACTION_ENABLED", defaults.answer_extraction_enabled
        ),
        search_endpoint=_get_str(env, "AZURE_SEARCH_ENDPOINT"),
        search_api_key=_get_str(env, "AZURE_SEARCH_API_KEY"),
        search_index_name=_get_str(env, "AZURE_SEARCH_INDEX_NAME", defaults.search_index_name),
        search_connect_timeout_seconds=_get_float(
            env, "SEARCH_CONNECT_TIMEOUT_SECONDS", defaults.search_connect_timeout_seconds
        ),
        search_timeout_seconds=_get_float(env, "SEARCH_TIMEOUT_SECONDS", defaults.search_timeout_seconds),
        search_retry_total=_get_int(env, "SEARCH_RETRY_TOTAL", defaults.search_retry_total),
        default_result_limit=_get_int(env, "DEFAULT_RESULT_LIMIT", defaults.default_result_limit),
        max_result_limit=_get_int(env, "MAX_RESULT_LIMIT", defaults.max_result_limit),
        cosmos_endpoint=_get_str(env, "COSMOS_ENDPOINT"),
        cosmos_key=_get_str(env, "COSMOS_KEY"),
        cosmos_database=_get_str(env, "COSMOS_DATABASE", defaults.cosmos_database),
        cosmos_container=_get_str(env, "COSMOS_CONTAINER", defaults.cosmos_container),
        service_tokens=_get_list(env, "SERVICE_TOKENS"),
        allowed_origins=_get_list(env, "ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS),
        host=_get_str(env, "HOST", defaults.host),
        port=_get_int(env, "PORT", defaults.port),
        log_level=_get_str(env, "LOG_LEVEL", defaults.log_level).upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
