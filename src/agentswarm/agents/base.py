from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..core.Messages import ContextVariables
from ..tools.base import AgentFunction

logger = logging.getLogger(__name__)

__all__ = ["Agent", "Instructions", "DEFAULT_INSTRUCTIONS", "DEFAULT_MODEL"]

DEFAULT_MODEL = "gpt-4o"
DEFAULT_INSTRUCTIONS = "You are a helpful agent."

_FUNCTION_CALL_MODES = ("none", "auto")


# ───────────────────────────────────────────────────────────────────────────────
# Instructions
# ───────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class Instructions:
    """
    Agent instructions: static text or a pure function of the context.

    Dynamic instructions are rendered every time they are needed; the result is
    never cached because the context may change between turns.
    """
    kind: str
    text: str = ""
    fn: Optional[Callable[[ContextVariables], str]] = None

    @classmethod
    def static(cls, text: str) -> "Instructions":
        if not isinstance(text, str):
            raise TypeError(f"static instructions must be a string, got {type(text)!r}")
        return cls(kind="static", text=text)

    @classmethod
    def dynamic(cls, fn: Callable[[ContextVariables], str]) -> "Instructions":
        if not callable(fn):
            raise TypeError(f"dynamic instructions must be callable, got {type(fn)!r}")
        return cls(kind="dynamic", fn=fn)

    @classmethod
    def coerce(cls, value: Union["Instructions", str, Callable[[ContextVariables], str]]) -> "Instructions":
        if isinstance(value, Instructions):
            return value
        if isinstance(value, str):
            return cls.static(value)
        if callable(value):
            return cls.dynamic(value)
        raise TypeError(f"instructions must be a string or a callable, got {type(value)!r}")

    @property
    def is_static(self) -> bool:
        return self.kind == "static"

    def render(self, context: Mapping[str, str]) -> str:
        if self.kind == "static":
            return self.text
        out = self.fn(dict(context))
        if not isinstance(out, str):
            raise TypeError(f"dynamic instructions must return str, got {type(out)!r}")
        return out


# ───────────────────────────────────────────────────────────────────────────────
# Agent
# ───────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True, slots=True, eq=False)
class Agent:
    """
    An LLM-backed participant in a conversation.

    Agents are immutable value objects. A handoff replaces the run's active agent
    with another Agent; it never mutates either one.

    Parameters
    ----------
    name : str
        Unique within a registry.
    model : str
        Chat-completions model identifier (must match an allow-listed prefix).
    instructions : Instructions | str | callable
        System prompt, static or rendered from the context each turn. May embed a
        ``<steps>`` block and ``{key}`` placeholders.
    functions : iterable of AgentFunction or callables
        Functions the model may call. Plain callables are wrapped with
        :meth:`AgentFunction.from_callable`.
    function_call : str, optional
        ``"none"``, ``"auto"`` or the name of one of ``functions`` to force.
    parallel_tool_calls : bool
        Whether several calls requested in one turn run concurrently.
    """
    name: str
    model: str = DEFAULT_MODEL
    instructions: Instructions = field(default_factory=lambda: Instructions.static(DEFAULT_INSTRUCTIONS))
    functions: Tuple[AgentFunction, ...] = ()
    function_call: Optional[str] = None
    parallel_tool_calls: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "instructions", Instructions.coerce(self.instructions))
        object.__setattr__(self, "functions", tuple(_to_agent_function(f) for f in self.functions))

    # ------------------------------------------------------------------ #
    # Function lookup
    # ------------------------------------------------------------------ #
    @property
    def function_names(self) -> List[str]:
        return [f.name for f in self.functions]

    def get_function(self, name: str) -> Optional[AgentFunction]:
        for fn in self.functions:
            if fn.name == name:
                return fn
        return None

    def with_functions(self, functions: Iterable[Any]) -> "Agent":
        return replace(self, functions=tuple(functions))

    def evolve(self, **changes: Any) -> "Agent":
        return replace(self, **changes)

    # ------------------------------------------------------------------ #
    # Request helpers
    # ------------------------------------------------------------------ #
    def tools(self) -> List[Dict[str, Any]]:
        return [f.to_tool() for f in self.functions]

    def tool_choice(self) -> Optional[Any]:
        """Wire value for ``tool_choice`` derived from ``function_call``."""
        if not self.function_call or not self.functions:
            return None
        if self.function_call in _FUNCTION_CALL_MODES:
            return self.function_call
        return {"type": "function", "function": {"name": self.function_call}}

    def render_instructions(self, context: Mapping[str, str]) -> str:
        return self.instructions.render(context)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "model": self.model,
            "instructions": self.instructions.text if self.instructions.is_static else "<dynamic>",
            "functions": [f.to_dict() for f in self.functions],
            "function_call": self.function_call,
            "parallel_tool_calls": self.parallel_tool_calls,
        }

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, model={self.model!r}, functions={self.function_names!r})"


def _to_agent_function(component: Any) -> AgentFunction:
    if isinstance(component, AgentFunction):
        return component
    if callable(component):
        return AgentFunction.from_callable(component)
    raise TypeError(f"agent functions must be AgentFunction or callable, got {type(component)!r}")
