from __future__ import annotations

import os
from dataclasses import dataclass

from sitepatch.errors import ConfigurationError

DEFAULT_MODEL_CHAIN: tuple[str, ...] = ("gpt-5", "gpt-4o", "gpt-4o-mini")

# Regions the model is never allowed to touch.
DEFAULT_PROTECTED_SELECTORS: tuple[str, ...] = (
    "head",
    "title",
    "script",
    "link",
    "meta",
    "style",
    "nav",
    "[data-protect]",
)


@dataclass(frozen=True)
class SitePatchConfig:
    db_path: str = "sitepatch.db"
    model_chain: tuple[str, ...] = DEFAULT_MODEL_CHAIN
    oracle_timeout: float = 90.0  # seconds, per model call
    poll_interval: float = 1.0  # seconds to sleep on an empty queue
    max_ops: int = 50  # <= 0 means unbounded
    protected_selectors: tuple[str, ...] = DEFAULT_PROTECTED_SELECTORS
    log_tail: int = 20
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com"
    host: str = "127.0.0.1"
    port: int = 5000

    def __post_init__(self) -> None:
        if not self.model_chain:
            raise ConfigurationError("model_chain must name at least one model")
        if self.oracle_timeout <= 0:
            raise ConfigurationError("oracle_timeout must be positive")
        if self.poll_interval < 0:
            raise ConfigurationError("poll_interval must not be negative")

    @classmethod
    def from_env(cls, **overrides: object) -> SitePatchConfig:
        """Build a config from environment variables.

        Reads SITEPATCH_DB, MODEL_CHAIN (comma-separated), MODEL_TIMEOUT_MS
        (milliseconds), SITEPATCH_POLL_INTERVAL, SITEPATCH_MAX_OPS, OPENAI_API_KEY
        and OPENAI_BASE_URL. Keyword overrides win over the environment.
        """
        env = os.environ
        values: dict[str, object] = {}
        if env.get("SITEPATCH_DB"):
            values["db_path"] = env["SITEPATCH_DB"]
        if env.get("MODEL_CHAIN"):
            values["model_chain"] = parse_model_chain(env["MODEL_CHAIN"])
        if env.get("MODEL_TIMEOUT_MS"):
            values["oracle_timeout"] = (
                _env_float("MODEL_TIMEOUT_MS", env["MODEL_TIMEOUT_MS"]) / 1000.0
            )
        if env.get("SITEPATCH_POLL_INTERVAL"):
            values["poll_interval"] = _env_float(
                "SITEPATCH_POLL_INTERVAL", env["SITEPATCH_POLL_INTERVAL"]
            )
        if env.get("SITEPATCH_MAX_OPS"):
            try:
                values["max_ops"] = int(env["SITEPATCH_MAX_OPS"])
            except ValueError as exc:
                raise ConfigurationError(
                    f"SITEPATCH_MAX_OPS must be an integer, got {env['SITEPATCH_MAX_OPS']!r}",
                    cause=exc,
                ) from exc
        if env.get("OPENAI_API_KEY"):
            values["openai_api_key"] = env["OPENAI_API_KEY"]
        if env.get("OPENAI_BASE_URL"):
            values["openai_base_url"] = env["OPENAI_BASE_URL"]
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]


def parse_model_chain(raw: str) -> tuple[str, ...]:
    """Split a comma-separated model list, dropping blanks."""
    return tuple(m.strip() for m in raw.split(",") if m.strip())


def _env_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", cause=exc) from exc
