"""Runtime settings read from the process environment."""

import os
from typing import NamedTuple, Optional

MODEL_NAME = "deepseek-ai/DeepSeek-V3.2"
DEFAULT_BASE_URL = "https://api-inference.modelscope.cn/v1"


class ConfigError(ValueError):
    """Raised when an environment value cannot be used."""


class Settings(NamedTuple):
    api_key: Optional[str]
    base_url: str = DEFAULT_BASE_URL
    model_name: str = MODEL_NAME
    max_steps: int = 5
    tool_timeout: float = 30.0
    request_timeout: float = 120.0


def _read_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings() -> Settings:
    """Build settings from the environment (call after ``load_dotenv``)."""
    return Settings(
        api_key=os.getenv("INFERENCE_API_KEY"),
        base_url=os.getenv("INFERENCE_BASE_URL") or DEFAULT_BASE_URL,
        max_steps=_read_number("CHAT_MAX_STEPS", 5, int),
        tool_timeout=_read_number("CHAT_TOOL_TIMEOUT", 30.0, float),
        request_timeout=_read_number("CHAT_REQUEST_TIMEOUT", 120.0, float),
    )
