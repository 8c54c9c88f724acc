"""In-memory transports and message factories for orchestrator tests.

A :class:`ScriptedTransport` replays a fixed list of replies, one per exchange,
and records every payload it was asked to send.
"""

import json
from typing import Any, Callable, Dict, Iterator, List, Mapping, Union

import httpx
from openai import OpenAI

from agentswarm.core.Exceptions import TransportError
from agentswarm.core.Messages import FunctionCall, Message
from agentswarm.engines.base import ChatTransport

Reply = Union[Message, BaseException, List[Any], Callable[[Mapping[str, Any]], Message]]


class ScriptedTransport(ChatTransport):
    """Replays scripted replies.

    - a ``Message`` is returned by ``complete``
    - an exception is raised
    - a list is a fragment sequence for ``stream``; an exception inside it is
      raised at that position
    - a callable receives the payload and returns a ``Message``
    """

    def __init__(self, replies: List[Reply], **kwargs: Any) -> None:
        kwargs.setdefault("max_retries", 1)
        super().__init__(name="scripted", **kwargs)
        self._replies = list(replies)
        self.payloads: List[Dict[str, Any]] = []
        self.closed_streams = 0

    @property
    def remaining(self) -> int:
        return len(self._replies)

    def _next(self, payload: Mapping[str, Any]) -> Reply:
        self.payloads.append(dict(payload))
        if not self._replies:
            raise TransportError("script exhausted", kind="script")
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def _call_provider(self, payload: Mapping[str, Any]) -> Any:
        reply = self._next(payload)
        if callable(reply) and not isinstance(reply, Message):
            return reply(payload)
        return reply

    def _extract_message(self, response: Any) -> Message:
        return response.copy()

    def _open_stream(self, payload: Mapping[str, Any]) -> Any:
        return iter(self._next(payload))

    def _iter_fragments(self, handle: Any) -> Iterator[Dict[str, Any]]:
        for item in handle:
            if isinstance(item, BaseException):
                raise item
            yield item

    def _close_stream(self, handle: Any) -> None:
        self.closed_streams += 1


# ============================================================================
# MESSAGE FACTORIES
# ============================================================================


def reply(content: str) -> Message:
    return Message.assistant(content)


def call(name: str, call_id: str = "call_0", **arguments: Any) -> Message:
    """Assistant message requesting one function call."""
    return calls((name, arguments), ids=[call_id])


def calls(*requests: Any, ids: List[str] = None) -> Message:
    """Assistant message requesting several calls: ``calls(("a", {...}), ("b", {...}))``."""
    ids = ids or [f"call_{i}" for i in range(len(requests))]
    return Message(
        role="assistant",
        content=None,
        tool_calls=[
            FunctionCall(name=name, arguments=json.dumps(args), id=call_id)
            for (name, args), call_id in zip(requests, ids)
        ],
    )


def function_messages(history: List[Message]) -> List[Message]:
    return [m for m in history if m.role == "function"]


# ============================================================================
# OPENAI CLIENT FACTORY
# ============================================================================


def mock_openai_client(handler: Callable[[httpx.Request], httpx.Response]) -> OpenAI:
    """OpenAI SDK client whose HTTP traffic is served by ``handler``."""
    return OpenAI(
        api_key="sk-test",
        base_url="https://api.openai.com/v1",
        max_retries=0,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def completion_body(content: str = None, tool_calls: List[Dict[str, Any]] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o",
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": "tool_calls" if tool_calls else "stop",
            }
        ],
    }


def sse_body(deltas: List[Dict[str, Any]], finish_reason: str = "stop") -> bytes:
    """Server-sent-events payload carrying ``deltas`` then ``[DONE]``."""
    lines = []
    for i, delta in enumerate(deltas):
        chunk = {
            "id": "chatcmpl-test",
            "object": "chat.completion.chunk",
            "created": 1700000000,
            "model": "gpt-4o",
            "choices": [
                {
                    "index": 0,
                    "delta": delta,
                    "finish_reason": finish_reason if i == len(deltas) - 1 else None,
                }
            ],
        }
        lines.append(f"data: {json.dumps(chunk)}\n\n")
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")
