"""Endpoint, credentials and model used for every chat-completion call.

Values are read once at process start: defaults, then the optional persisted
settings file (``PLANNER_SETTINGS_FILE``), then environment variables.
``ApiSettings.override`` returns an updated copy for runtime changes.
"""
import json
import logging
import os
from dataclasses import dataclass, replace

from dataclasses_json import Undefined, dataclass_json

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.grsai.com/v1/chat/completions"
DEFAULT_MODEL = "gemini-3-pro"

_ENV_KEYS = {
    "base_url": "LLM_BASE_URL",
    "api_key": "LLM_API_KEY",
    "model": "LLM_MODEL",
    "transport": "LLM_TRANSPORT",
    "timeout_seconds": "LLM_TIMEOUT_SECONDS",
    "enrichment_concurrency": "ENRICHMENT_CONCURRENCY",
}


class SettingsError(RuntimeError):
    """Raised when a model call is attempted without endpoint, token or model."""


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass(frozen=True)
class ApiSettings:
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    transport: str = "http"  # "http" (raw endpoint) or "litellm"
    timeout_seconds: float = 180.0
    enrichment_concurrency: int = 2

    def override(self, **changes) -> "ApiSettings":
        """Return a copy with the non-empty ``changes`` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v not in (None, "")})

    def require(self) -> "ApiSettings":
        missing = [name for name in ("base_url", "api_key", "model") if not getattr(self, name)]
        if missing:
            raise SettingsError(f"Missing LLM settings: {', '.join(missing)}")
        return self

    def redacted(self) -> dict:
        data = self.to_dict()
        data["api_key"] = "***" if self.api_key else ""
        return data


def _load_settings_file(path: str) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            stored = json.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to load settings from %s: %s", path, exc)
        return {}
    return stored if isinstance(stored, dict) else {}


def load_settings() -> ApiSettings:
    """Build settings from defaults, the persisted file and the environment."""
    values: dict = {}

    path = os.getenv("PLANNER_SETTINGS_FILE")
    if path:
        values.update(_load_settings_file(path))

    for field_name, env_key in _ENV_KEYS.items():
        raw = os.getenv(env_key)
        if raw:
            values[field_name] = raw

    settings = ApiSettings.from_dict(values)
    return replace(
        settings,
        timeout_seconds=float(settings.timeout_seconds),
        enrichment_concurrency=max(int(settings.enrichment_concurrency), 1),
        transport=str(settings.transport).lower().strip(),
    )
