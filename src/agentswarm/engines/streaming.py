from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from ..core.Exceptions import TransportError
from ..core.Messages import FunctionCall, Message

logger = logging.getLogger(__name__)

__all__ = ["StreamAssembler"]


def _malformed(detail: str) -> TransportError:
    return TransportError(f"malformed stream fragment: {detail}", kind="malformed_fragment")


class StreamAssembler:
    """
    Folds sparse chat-completion deltas into one assistant message.

    Merge rules
    -----------
    - ``role`` is set by the first fragment carrying one and never changes.
    - ``content`` pieces are concatenated in arrival order.
    - a ``function_call`` name is set by the first non-empty delta; argument
      pieces are concatenated.
    - indexed ``tool_calls`` deltas are merged per ``index`` with the same rules
      (the ``id`` is set once).
    - :attr:`complete` flips to True when a fragment carries ``finish_reason`` or
      the upstream sequence ends.

    Fragments may be flat deltas or raw chunks with a ``choices`` list.
    """

    def __init__(self) -> None:
        self._role: str = ""
        self._content: Optional[str] = None
        self._function_call: Optional[FunctionCall] = None
        self._tool_calls: Dict[int, FunctionCall] = {}
        self._complete = False
        self._finish_reason: Optional[str] = None
        self._fragments = 0

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #
    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def finish_reason(self) -> Optional[str]:
        return self._finish_reason

    @property
    def fragments_seen(self) -> int:
        return self._fragments

    @property
    def message(self) -> Message:
        """Snapshot of the message assembled so far."""
        return Message(
            role=self._role,
            content=self._content,
            function_call=(
                FunctionCall(self._function_call.name, self._function_call.arguments)
                if self._function_call is not None
                else None
            ),
            tool_calls=[
                FunctionCall(c.name, c.arguments, c.id)
                for _, c in sorted(self._tool_calls.items())
            ],
        )

    # ------------------------------------------------------------------ #
    # Merging
    # ------------------------------------------------------------------ #
    def feed(self, fragment: Mapping[str, Any]) -> Message:
        if not isinstance(fragment, Mapping):
            raise _malformed(f"expected a mapping, got {type(fragment).__name__}")
        delta, finish_reason = self._unwrap(fragment)
        self._fragments += 1

        role = delta.get("role")
        if role:
            if not isinstance(role, str):
                raise _malformed("role must be a string")
            if not self._role:
                self._role = role

        content = delta.get("content")
        if content is not None:
            if not isinstance(content, str):
                raise _malformed("content must be a string")
            self._content = (self._content or "") + content

        function_call = delta.get("function_call")
        if function_call is not None:
            if not isinstance(function_call, Mapping):
                raise _malformed("function_call must be an object")
            if self._function_call is None:
                self._function_call = FunctionCall()
            self._merge_call(self._function_call, function_call)

        tool_calls = delta.get("tool_calls")
        if tool_calls is not None:
            if not isinstance(tool_calls, list):
                raise _malformed("tool_calls must be a list")
            for position, tc in enumerate(tool_calls):
                if not isinstance(tc, Mapping):
                    raise _malformed("tool_calls entries must be objects")
                index = tc.get("index", position)
                if not isinstance(index, int):
                    raise _malformed("tool_calls index must be an integer")
                call = self._tool_calls.setdefault(index, FunctionCall())
                if tc.get("id") and not call.id:
                    call.id = tc["id"]
                fn = tc.get("function") or {}
                if not isinstance(fn, Mapping):
                    raise _malformed("tool_calls function must be an object")
                self._merge_call(call, fn)

        if finish_reason is not None:
            self._finish_reason = finish_reason
            self._complete = True

        return self.message

    def finish(self) -> Message:
        """Mark the end of the upstream sequence."""
        self._complete = True
        if not self._role:
            self._role = "assistant"
        return self.message

    def stream(self, fragments: Iterable[Mapping[str, Any]]) -> Iterator[Message]:
        """Lazily yield one snapshot per fragment.

        Closing this generator closes ``fragments`` when it is closable.
        """
        iterator = iter(fragments)
        try:
            for fragment in iterator:
                yield self.feed(fragment)
            self.finish()
        finally:
            close = getattr(iterator, "close", None)
            if callable(close):
                close()

    @classmethod
    def assemble(cls, fragments: Iterable[Mapping[str, Any]]) -> Message:
        assembler = cls()
        for _ in assembler.stream(fragments):
            pass
        return assembler.message

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def _unwrap(fragment: Mapping[str, Any]) -> tuple[Mapping[str, Any], Optional[str]]:
        if "choices" in fragment:
            choices = fragment.get("choices") or []
            if not isinstance(choices, list):
                raise _malformed("choices must be a list")
            if not choices:
                return {}, None
            choice = choices[0]
            if not isinstance(choice, Mapping):
                raise _malformed("choice must be an object")
            delta = choice.get("delta") or {}
            if not isinstance(delta, Mapping):
                raise _malformed("delta must be an object")
            return delta, choice.get("finish_reason")
        return fragment, fragment.get("finish_reason")

    @staticmethod
    def _merge_call(call: FunctionCall, delta: Mapping[str, Any]) -> None:
        name = delta.get("name")
        if name and not call.name:
            call.name = name
        arguments = delta.get("arguments")
        if arguments is not None:
            if not isinstance(arguments, str):
                raise _malformed("function arguments must be a string")
            call.arguments += arguments
