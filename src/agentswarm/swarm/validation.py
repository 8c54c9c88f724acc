"""
Validation layer.

Pure checks run before any network activity. Request and URL validation
collect every violated rule and raise a single :class:`ValidationError`;
configuration validation raises :class:`ConfigError` on the first bad field.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from ..agents.base import Agent
from ..core.Config import ROLE_ASSISTANT, ROLE_FUNCTION, ROLE_SYSTEM, ROLE_USER, SwarmConfig
from ..core.Exceptions import ValidationError, Violation
from ..core.Messages import Message

__all__ = [
    "collect_request_violations",
    "validate_request",
    "validate_model",
    "validate_url",
    "validate_api_key",
    "validate_config",
]

_ROLES = frozenset({ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT, ROLE_FUNCTION})
_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1"})


def _model_violations(field: str, model: Optional[str], prefixes: Sequence[str]) -> List[Violation]:
    if model is None or not model.strip():
        return [Violation(field, "model name cannot be empty")]
    if not any(model.startswith(p) for p in prefixes):
        return [Violation(field, f"invalid model prefix {model!r}; expected one of {list(prefixes)}")]
    return []


def collect_request_violations(
    agent: Agent,
    messages: Sequence[Message],
    *,
    config: SwarmConfig,
    model_override: Optional[str] = None,
    max_turns: Optional[int] = None,
    has_step_plan: bool = False,
) -> List[Violation]:
    """Return every rule a ``run`` request violates (empty list when valid)."""
    violations: List[Violation] = []

    if not isinstance(agent.name, str) or not agent.name.strip():
        violations.append(Violation("agent.name", "agent name cannot be empty"))
    violations.extend(_model_violations("agent.model", agent.model, config.valid_model_prefixes))
    if model_override is not None:
        violations.extend(_model_violations("model_override", model_override, config.valid_model_prefixes))

    if agent.instructions.is_static and not agent.instructions.text.strip():
        violations.append(Violation("agent.instructions", "instructions cannot be empty"))

    duplicates = [n for n, count in Counter(agent.function_names).items() if count > 1]
    if duplicates:
        violations.append(Violation("agent.functions", f"duplicate function names {sorted(duplicates)}"))
    if agent.function_call and agent.function_call not in ("none", "auto"):
        if agent.get_function(agent.function_call) is None:
            violations.append(
                Violation("agent.function_call", f"forced function {agent.function_call!r} is not registered")
            )

    if not messages and not has_step_plan:
        violations.append(Violation("messages", "message history cannot be empty"))
    for i, msg in enumerate(messages):
        if not isinstance(msg, Message):
            violations.append(Violation(f"messages[{i}]", f"expected Message, got {type(msg).__name__}"))
            continue
        if not msg.role or not msg.role.strip():
            violations.append(Violation(f"messages[{i}].role", "role cannot be empty"))
        elif msg.role not in _ROLES:
            violations.append(Violation(f"messages[{i}].role", f"unknown role {msg.role!r}"))
        # function results may legitimately be empty strings
        if msg.role != ROLE_FUNCTION and not msg.has_function_call:
            if msg.content is None or not msg.content.strip():
                violations.append(Violation(f"messages[{i}].content", "content cannot be empty"))

    if max_turns is not None:
        if max_turns <= 0:
            violations.append(Violation("max_turns", "max_turns must be greater than 0"))
        elif max_turns > config.max_turns:
            violations.append(
                Violation("max_turns", f"max_turns {max_turns} exceeds the configured maximum {config.max_turns}")
            )

    return violations


def validate_request(
    agent: Agent,
    messages: Sequence[Message],
    *,
    config: SwarmConfig,
    model_override: Optional[str] = None,
    max_turns: Optional[int] = None,
    has_step_plan: bool = False,
) -> None:
    violations = collect_request_violations(
        agent,
        messages,
        config=config,
        model_override=model_override,
        max_turns=max_turns,
        has_step_plan=has_step_plan,
    )
    if violations:
        raise ValidationError(violations)


def validate_model(model: str, prefixes: Iterable[str]) -> str:
    violations = _model_violations("model", model, tuple(prefixes))
    if violations:
        raise ValidationError(violations)
    return model


def validate_url(url: str, allowed_prefixes: Optional[Iterable[str]] = None) -> str:
    """
    Check an API base URL.

    Requires ``https`` (``http`` only for localhost/127.0.0.1 on any port) and,
    for non-local hosts, one of ``allowed_prefixes``. Returns ``url`` unchanged.
    """
    if url is None or not url.strip():
        raise ValidationError([Violation("api_url", "URL cannot be empty")])

    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError as exc:
        raise ValidationError([Violation("api_url", f"invalid URL: {exc}")]) from exc
    if not parsed.scheme or not host:
        raise ValidationError([Violation("api_url", f"invalid URL {url!r}")])

    violations: List[Violation] = []
    is_local = host in _LOCAL_HOSTS
    if parsed.scheme == "http":
        if not is_local:
            violations.append(Violation("api_url", "http is only allowed for localhost"))
    elif parsed.scheme != "https":
        violations.append(Violation("api_url", f"unsupported scheme {parsed.scheme!r}; use https"))

    if not is_local and allowed_prefixes is not None:
        prefixes = list(allowed_prefixes)
        if not any(url.startswith(p) for p in prefixes):
            violations.append(Violation("api_url", f"URL must start with one of {prefixes}"))

    if violations:
        raise ValidationError(violations)
    return url


def validate_api_key(api_key: Optional[str], *, prefix: Optional[str] = "sk-") -> str:
    violations: List[Violation] = []
    if api_key is None or not api_key.strip():
        violations.append(Violation("api_key", "API key cannot be empty"))
    elif prefix and not api_key.startswith(prefix):
        violations.append(Violation("api_key", f"API key must start with {prefix!r}"))
    if violations:
        raise ValidationError(violations)
    return api_key


def validate_config(config: SwarmConfig) -> SwarmConfig:
    """Raise :class:`ConfigError` for the first invalid setting."""
    return config.validate()
