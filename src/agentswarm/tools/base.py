from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from ..core.Exceptions import FunctionExecutionError
from ..core.Messages import ContextVariables, stringify_values

if TYPE_CHECKING:  # pragma: no cover
    from ..agents.base import Agent

__all__ = ["AgentFunction", "ResultKind", "ResultType", "empty_parameters"]


def empty_parameters() -> Dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


# ───────────────────────────────────────────────────────────────────────────────
# Function results
# ───────────────────────────────────────────────────────────────────────────────
class ResultKind(str, enum.Enum):
    VALUE = "value"
    AGENT = "agent"
    CONTEXT_VARIABLES = "context_variables"


@dataclass(frozen=True, slots=True)
class ResultType:
    """Tagged result of an agent function.

    Exactly one payload is set, matching ``kind``:

    - ``VALUE`` carries ``value`` (recorded as the function message content),
    - ``AGENT`` carries ``agent`` (a handoff),
    - ``CONTEXT_VARIABLES`` carries ``context_variables`` (replaces the run context).
    """
    kind: ResultKind
    value: str = ""
    agent: Optional["Agent"] = None
    context_variables: ContextVariables = field(default_factory=dict)

    @classmethod
    def of_value(cls, value: str) -> "ResultType":
        return cls(kind=ResultKind.VALUE, value=value)

    @classmethod
    def of_agent(cls, agent: "Agent") -> "ResultType":
        return cls(kind=ResultKind.AGENT, agent=agent)

    @classmethod
    def of_context(cls, context_variables: Mapping[str, Any]) -> "ResultType":
        return cls(kind=ResultKind.CONTEXT_VARIABLES, context_variables=stringify_values(context_variables))

    @classmethod
    def coerce(cls, name: str, raw: Any) -> "ResultType":
        """Normalize a raw function return; unsupported types raise FunctionExecutionError."""
        from ..agents.base import Agent

        if isinstance(raw, ResultType):
            return raw
        if isinstance(raw, str):
            return cls.of_value(raw)
        if isinstance(raw, Agent):
            return cls.of_agent(raw)
        if isinstance(raw, Mapping):
            return cls.of_context(raw)
        raise FunctionExecutionError(
            name, f"unsupported return type {type(raw).__name__!r} (expected str, Agent or mapping)"
        )

    @property
    def content(self) -> str:
        """Text recorded into the function message for this result."""
        if self.kind is ResultKind.AGENT and self.agent is not None:
            return json.dumps({"assistant": self.agent.name})
        if self.kind is ResultKind.CONTEXT_VARIABLES:
            return "Context variables updated."
        return self.value


# ───────────────────────────────────────────────────────────────────────────────
# Agent function
# ───────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class AgentFunction:
    """
    A caller-supplied function an agent may invoke.

    The callable receives one mapping: the call's decoded arguments, merged over a
    snapshot of the run's context variables when ``accepts_context_variables`` is
    set. It returns a :class:`ResultType`, a ``str``, an ``Agent`` or a mapping.
    """
    name: str
    function: Callable[[ContextVariables], Any]
    accepts_context_variables: bool = False
    description: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=empty_parameters)

    def __post_init__(self) -> None:
        if not callable(self.function):
            raise TypeError(f"AgentFunction function must be callable, got {type(self.function)!r}")
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("AgentFunction name must be a non-empty string")
        inferred = (self.description or getattr(self.function, "__doc__", "") or "undescribed").strip()
        object.__setattr__(self, "description", inferred or "undescribed")

    @classmethod
    def from_callable(
        cls,
        function: Callable[[ContextVariables], Any],
        *,
        name: Optional[str] = None,
        accepts_context_variables: bool = False,
        description: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> "AgentFunction":
        return cls(
            name=name or getattr(function, "__name__", "") or "unnamed_function",
            function=function,
            accepts_context_variables=accepts_context_variables,
            description=description,
            parameters=parameters if parameters is not None else empty_parameters(),
        )

    def invoke(self, inputs: ContextVariables) -> ResultType:
        if not isinstance(inputs, Mapping):
            raise FunctionExecutionError(self.name, "inputs must be a mapping")
        raw = self.function(dict(inputs))
        return ResultType.coerce(self.name, raw)

    def to_tool(self) -> Dict[str, Any]:
        """OpenAI ``tools`` entry advertising this function."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "accepts_context_variables": self.accepts_context_variables,
            "parameters": self.parameters,
        }
