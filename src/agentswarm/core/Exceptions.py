from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .Messages import Response

__all__ = [
    "SwarmError",
    "ConfigError",
    "ValidationError",
    "Violation",
    "ParseError",
    "TransportError",
    "FunctionError",
    "FunctionNotFoundError",
    "FunctionExecutionError",
    "AgentNotFoundError",
    "RegistrationError",
]


# ───────────────────────────────────────────────────────────────────────────────
# Exceptions
# ───────────────────────────────────────────────────────────────────────────────
class SwarmError(RuntimeError):
    """Base class for every error raised by agentswarm.

    ``partial_response`` is populated when the error aborts a run that had
    already produced history, so callers can inspect the trace without re-running.
    """

    def __init__(self, message: str, *, partial_response: Optional["Response"] = None) -> None:
        super().__init__(message)
        self.partial_response = partial_response

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigError(SwarmError):
    """Raised for bad static configuration (fatal, never retried)."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


@dataclass(frozen=True, slots=True)
class Violation:
    """A single violated validation rule."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationError(SwarmError, ValueError):
    """Raised for bad per-call input. Lists every violated rule at once."""

    def __init__(self, violations: Iterable[Violation]) -> None:
        self.violations: List[Violation] = list(violations)
        if not self.violations:
            raise ValueError("ValidationError requires at least one violation")
        joined = "; ".join(str(v) for v in self.violations)
        super().__init__(f"Invalid input: {joined}")

    @property
    def fields(self) -> List[str]:
        return [v.field for v in self.violations]


class ParseError(SwarmError, ValueError):
    """Raised when an embedded steps block is malformed."""

    def __init__(self, message: str, *, fragment: Optional[str] = None) -> None:
        super().__init__(f"Failed to parse steps: {message}")
        self.fragment = fragment


class TransportError(SwarmError):
    """Raised when a chat-completion exchange fails.

    ``retriable`` is True for timeouts, connection failures, 429 and 5xx
    responses. Everything else (other 4xx, bad credentials, empty or malformed
    responses) is fatal.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: str = "network",
        status_code: Optional[int] = None,
        retriable: bool = False,
    ) -> None:
        super().__init__(message)
        self._kind = kind
        self.status_code = status_code
        self.retriable = retriable

    @property
    def kind(self) -> str:
        return self._kind

    @classmethod
    def from_status(cls, status_code: int, message: str) -> "TransportError":
        if status_code == 429:
            return cls(message, kind="rate_limit", status_code=status_code, retriable=True)
        if status_code >= 500:
            return cls(message, kind="server", status_code=status_code, retriable=True)
        if status_code in (401, 403):
            return cls(message, kind="auth", status_code=status_code, retriable=False)
        return cls(message, kind="api", status_code=status_code, retriable=False)


class FunctionError(SwarmError):
    """Base class for errors recovered locally by the function dispatcher."""

    def __init__(self, message: str, *, name: str) -> None:
        super().__init__(message)
        self.name = name


class FunctionNotFoundError(FunctionError):
    """Raised when a requested function is not registered on the active agent."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Function {name} not found.", name=name)


class FunctionExecutionError(FunctionError):
    """Raised when an agent function fails or returns an unusable result."""

    def __init__(self, name: str, cause: Any) -> None:
        super().__init__(f"Function {name} failed: {cause}", name=name)
        self.cause = cause


class AgentNotFoundError(SwarmError):
    """Raised when a handoff names an agent missing from the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Agent not found: {name}")
        self.name = name


class RegistrationError(SwarmError):
    """Raised when an agent cannot be registered (bad type or name collision)."""
