from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from .Exceptions import ConfigError

logger = logging.getLogger(__name__)

__all__ = [
    "CTX_VARS_NAME",
    "OPENAI_DEFAULT_API_URL",
    "ROLE_ASSISTANT",
    "ROLE_FUNCTION",
    "ROLE_SYSTEM",
    "ROLE_USER",
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_CONNECT_TIMEOUT",
    "MIN_REQUEST_TIMEOUT",
    "MAX_REQUEST_TIMEOUT",
    "VALID_API_URL_PREFIXES",
    "LoopControl",
    "RetryStrategy",
    "SwarmConfig",
    "load_config",
]

# ───────────────────────────────────────────────────────────────────────────────
# Constants
# ───────────────────────────────────────────────────────────────────────────────
CTX_VARS_NAME = "context_variables"
OPENAI_DEFAULT_API_URL = "https://api.openai.com/v1"
DEFAULT_API_VERSION = "v1"

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_FUNCTION = "function"

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 10.0
MIN_REQUEST_TIMEOUT = 1.0
MAX_REQUEST_TIMEOUT = 3600.0

VALID_API_URL_PREFIXES: Tuple[str, ...] = (
    "https://api.openai.com",
    "https://api.azure.com/openai",
)
VALID_MODEL_PREFIXES: Tuple[str, ...] = ("gpt-",)


# ───────────────────────────────────────────────────────────────────────────────
# Config value objects
# ───────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class LoopControl:
    """Settings for ``loop`` steps.

    ``break_conditions`` are context keys; a truthy value under any of them ends
    the loop. ``iteration_delay`` is slept (seconds) between iterations.
    """
    iteration_delay: float = 0.1
    break_conditions: Tuple[str, ...] = ("end_loop",)


@dataclass(frozen=True, slots=True)
class RetryStrategy:
    """Exponential backoff between transport attempts (seconds)."""
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before attempt ``attempt + 1`` (``attempt`` is 1-based)."""
        delay = self.initial_delay * (self.backoff_factor ** (attempt - 1))
        return min(delay, self.max_delay)


@dataclass(frozen=True, slots=True)
class SwarmConfig:
    """
    Immutable run-time policy for a :class:`~agentswarm.swarm.core.Swarm`.

    Constructed once and read-only thereafter; use :meth:`evolve` to derive a
    modified copy.

    Fields
    ------
    api_url:
        Base URL of the chat-completions API (``/chat/completions`` is appended
        by the transport).
    request_timeout, connect_timeout:
        Per-exchange timeouts in seconds (total request vs. connection setup).
    max_retries:
        Maximum number of attempts per exchange (1 means no retry).
    max_turns:
        Ceiling for the ``max_turns`` argument of ``run`` and its default.
    max_loop_iterations:
        Iteration cap for ``loop`` steps. Reaching it is a graceful stop.
    propagate_function_errors:
        When True, function failures abort the run instead of being recorded
        into the conversation.
    api_key_prefix:
        Required prefix for API keys, or None to accept any non-empty key.
    """
    api_url: str = OPENAI_DEFAULT_API_URL
    api_version: str = DEFAULT_API_VERSION
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_retries: int = 3
    max_turns: int = 10
    max_loop_iterations: int = 10
    valid_model_prefixes: Tuple[str, ...] = VALID_MODEL_PREFIXES
    valid_api_url_prefixes: Tuple[str, ...] = VALID_API_URL_PREFIXES
    loop_control: LoopControl = field(default_factory=LoopControl)
    retry_strategy: RetryStrategy = field(default_factory=RetryStrategy)
    propagate_function_errors: bool = False
    api_key_prefix: Optional[str] = "sk-"

    def __post_init__(self) -> None:
        # Accept lists from callers but store tuples so the config stays hashable.
        object.__setattr__(self, "valid_model_prefixes", tuple(self.valid_model_prefixes))
        object.__setattr__(self, "valid_api_url_prefixes", tuple(self.valid_api_url_prefixes))

    def evolve(self, **changes: Any) -> "SwarmConfig":
        return replace(self, **changes)

    def validate(self) -> "SwarmConfig":
        """Raise :class:`ConfigError` on the first invalid setting; return self otherwise."""
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be greater than 0", field="request_timeout")
        if self.connect_timeout <= 0:
            raise ConfigError("connect_timeout must be greater than 0", field="connect_timeout")
        if not (MIN_REQUEST_TIMEOUT <= self.request_timeout <= MAX_REQUEST_TIMEOUT):
            raise ConfigError(
                f"request_timeout must be between {MIN_REQUEST_TIMEOUT} and {MAX_REQUEST_TIMEOUT} seconds",
                field="request_timeout",
            )
        if self.max_retries <= 0:
            raise ConfigError("max_retries must be greater than 0", field="max_retries")
        if self.max_turns <= 0:
            raise ConfigError("max_turns must be greater than 0", field="max_turns")
        if self.max_loop_iterations <= 0:
            raise ConfigError("max_loop_iterations must be greater than 0", field="max_loop_iterations")
        if not self.valid_model_prefixes:
            raise ConfigError("valid_model_prefixes cannot be empty", field="valid_model_prefixes")
        if self.loop_control.iteration_delay < 0:
            raise ConfigError("loop_control.iteration_delay cannot be negative", field="loop_control")
        if not self.api_url.strip():
            raise ConfigError("api_url cannot be empty", field="api_url")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Non-secret snapshot for logging."""
        return {
            "api_url": self.api_url,
            "request_timeout": self.request_timeout,
            "connect_timeout": self.connect_timeout,
            "max_retries": self.max_retries,
            "max_turns": self.max_turns,
            "max_loop_iterations": self.max_loop_iterations,
            "valid_model_prefixes": list(self.valid_model_prefixes),
            "break_conditions": list(self.loop_control.break_conditions),
        }


# ───────────────────────────────────────────────────────────────────────────────
# Environment loading
# ───────────────────────────────────────────────────────────────────────────────
_ENV_FIELDS: Dict[str, Tuple[str, type]] = {
    "OPENAI_API_URL": ("api_url", str),
    "SWARM_REQUEST_TIMEOUT": ("request_timeout", float),
    "SWARM_CONNECT_TIMEOUT": ("connect_timeout", float),
    "SWARM_MAX_RETRIES": ("max_retries", int),
    "SWARM_MAX_TURNS": ("max_turns", int),
    "SWARM_MAX_LOOP_ITERATIONS": ("max_loop_iterations", int),
}


def load_config(env_file: Optional[str] = None, base: Optional[SwarmConfig] = None) -> SwarmConfig:
    """
    Build a :class:`SwarmConfig` from the environment (and a ``.env`` file).

    Variables that are unset keep the value from ``base`` (or the defaults).
    Malformed numbers raise :class:`ConfigError`.
    """
    load_dotenv(env_file) if env_file else load_dotenv()
    overrides: Dict[str, Any] = {}
    for env_name, (attr, caster) in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is None or not raw.strip():
            continue
        try:
            overrides[attr] = caster(raw.strip())
        except ValueError as exc:
            raise ConfigError(f"{env_name} is not a valid {caster.__name__}: {raw!r}", field=attr) from exc
    config = replace(base or SwarmConfig(), **overrides)
    logger.debug("load_config: %s", config.to_dict())
    return config.validate()
