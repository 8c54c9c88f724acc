from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from .Config import ROLE_ASSISTANT, ROLE_FUNCTION, ROLE_SYSTEM, ROLE_USER

if TYPE_CHECKING:  # pragma: no cover
    from ..agents.base import Agent

__all__ = [
    "ContextVariables",
    "FunctionCall",
    "Message",
    "Response",
    "substitute_placeholders",
    "is_truthy",
    "stringify_values",
]

ContextVariables = Dict[str, str]

# {key} placeholders; keys follow identifier rules so JSON braces are left alone.
_PLACEHOLDER: re.Pattern[str] = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_TRUTHY = frozenset({"true", "1", "yes"})


# ───────────────────────────────────────────────────────────────────────────────
# Context helpers
# ───────────────────────────────────────────────────────────────────────────────
def substitute_placeholders(text: str, context: Mapping[str, Any]) -> str:
    """Replace every ``{key}`` in ``text`` with ``context[key]``.

    Keys absent from the context resolve to the empty string.
    """
    if not text:
        return text or ""

    def repl(m: re.Match[str]) -> str:
        value = context.get(m.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(repl, text)


def is_truthy(value: Any) -> bool:
    """Loop break semantics: ``true``/``1``/``yes`` (case-insensitive)."""
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


def stringify_values(data: Mapping[str, Any]) -> ContextVariables:
    """Coerce a mapping to ``dict[str, str]``; non-string values are JSON-encoded."""
    out: ContextVariables = {}
    for key, value in data.items():
        if isinstance(value, str):
            out[str(key)] = value
        elif value is None:
            out[str(key)] = ""
        else:
            out[str(key)] = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
    return out


# ───────────────────────────────────────────────────────────────────────────────
# Messages
# ───────────────────────────────────────────────────────────────────────────────
def _fallback_call_id(index: int) -> str:
    return f"call_{index}"


@dataclass(slots=True)
class FunctionCall:
    """A model-requested call: function name plus JSON-serialized arguments."""
    name: str = ""
    arguments: str = ""
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "arguments": self.arguments or "{}"}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, call_id: Optional[str] = None) -> "FunctionCall":
        args = data.get("arguments")
        if isinstance(args, Mapping):
            args = json.dumps(dict(args))
        return cls(name=data.get("name") or "", arguments=args or "", id=call_id)


@dataclass(slots=True)
class Message:
    """
    One entry of a conversation history.

    ``role`` is one of ``system``, ``user``, ``assistant`` or ``function``.
    An assistant message requesting work carries either a single legacy
    ``function_call`` or a list of ``tool_calls``; a function message answering
    a tool call carries its ``tool_call_id``.
    """
    role: str
    content: Optional[str] = None
    name: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    tool_calls: List[FunctionCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None

    # Constructors --------------------------------------------------------- #
    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=ROLE_SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=ROLE_USER, content=content)

    @classmethod
    def assistant(cls, content: Optional[str] = None, *, name: Optional[str] = None) -> "Message":
        return cls(role=ROLE_ASSISTANT, content=content, name=name)

    @classmethod
    def function_result(
        cls, name: str, content: str, *, tool_call_id: Optional[str] = None
    ) -> "Message":
        return cls(role=ROLE_FUNCTION, content=content, name=name, tool_call_id=tool_call_id)

    # Queries -------------------------------------------------------------- #
    def requested_calls(self) -> List[FunctionCall]:
        """Calls to dispatch, in request order."""
        if self.tool_calls:
            return list(self.tool_calls)
        if self.function_call is not None and self.function_call.name:
            return [self.function_call]
        return []

    @property
    def has_function_call(self) -> bool:
        return bool(self.requested_calls())

    def assign_call_ids(self) -> None:
        """Give id-less ``tool_calls`` a positional id so their results can answer them."""
        if len(self.tool_calls) > 1:
            for i, call in enumerate(self.tool_calls):
                if not call.id:
                    call.id = _fallback_call_id(i)

    def copy(self) -> "Message":
        return Message(
            role=self.role,
            content=self.content,
            name=self.name,
            function_call=(
                FunctionCall(self.function_call.name, self.function_call.arguments, self.function_call.id)
                if self.function_call is not None
                else None
            ),
            tool_calls=[FunctionCall(c.name, c.arguments, c.id) for c in self.tool_calls],
            tool_call_id=self.tool_call_id,
        )

    # Wire format ---------------------------------------------------------- #
    def to_dict(self) -> Dict[str, Any]:
        """Chat-completions wire representation."""
        if self.role == ROLE_FUNCTION:
            if self.tool_call_id:
                return {"role": "tool", "tool_call_id": self.tool_call_id, "content": self.content or ""}
            return {"role": ROLE_FUNCTION, "name": self.name or "", "content": self.content or ""}

        out: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name and self.role != ROLE_ASSISTANT:
            out["name"] = self.name
        calls = self.requested_calls()
        if len(calls) > 1 or (calls and calls[0].id):
            out["tool_calls"] = [
                {"id": c.id or _fallback_call_id(i), "type": "function", "function": c.to_dict()}
                for i, c in enumerate(calls)
            ]
        elif calls:
            out["function_call"] = calls[0].to_dict()
        if out["content"] is None and self.role != ROLE_ASSISTANT:
            out["content"] = ""
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        """Build a Message from a wire dict (``tool`` role maps to ``function``)."""
        role = data.get("role") or ""
        if role == "tool":
            return cls(
                role=ROLE_FUNCTION,
                content=data.get("content") or "",
                name=data.get("name"),
                tool_call_id=data.get("tool_call_id"),
            )

        function_call = None
        if data.get("function_call"):
            function_call = FunctionCall.from_dict(data["function_call"])
        tool_calls = [
            FunctionCall.from_dict(tc.get("function") or {}, call_id=tc.get("id"))
            for tc in (data.get("tool_calls") or [])
        ]
        return cls(
            role=role,
            content=data.get("content"),
            name=data.get("name"),
            function_call=function_call,
            tool_calls=tool_calls,
            tool_call_id=data.get("tool_call_id"),
        )


# ───────────────────────────────────────────────────────────────────────────────
# Run result
# ───────────────────────────────────────────────────────────────────────────────
@dataclass(slots=True)
class Response:
    """Outcome of ``Swarm.run``: full history, final context and active agent."""
    messages: List[Message] = field(default_factory=list)
    agent: Optional["Agent"] = None
    context_variables: ContextVariables = field(default_factory=dict)
    turns: int = 0
    loop_iterations: Dict[int, int] = field(default_factory=dict)
    loop_caps_reached: List[int] = field(default_factory=list)

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    @property
    def content(self) -> Optional[str]:
        """Content of the last assistant message, if any."""
        for msg in reversed(self.messages):
            if msg.role == ROLE_ASSISTANT and msg.content:
                return msg.content
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "agent": self.agent.name if self.agent is not None else None,
            "context_variables": dict(self.context_variables),
            "turns": self.turns,
            "loop_iterations": dict(self.loop_iterations),
            "loop_caps_reached": list(self.loop_caps_reached),
        }
