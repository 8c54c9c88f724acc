from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from ..core.Config import RetryStrategy, SwarmConfig
from ..core.Exceptions import SwarmError, TransportError
from ..core.Messages import Message

logger = logging.getLogger(__name__)

__all__ = [
    "CompletionRequest",
    "ChatTransport",
]


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """One chat-completion exchange: history plus function descriptors."""
    model: str
    messages: List[Message] = field(default_factory=list)
    tools: List[Dict[str, Any]] = field(default_factory=list)
    tool_choice: Optional[Any] = None
    parallel_tool_calls: Optional[bool] = None
    stream: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Keyword arguments for ``chat.completions.create``."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
        }
        if self.tools:
            payload["tools"] = list(self.tools)
            if self.tool_choice is not None:
                payload["tool_choice"] = self.tool_choice
            if self.parallel_tool_calls is not None:
                payload["parallel_tool_calls"] = self.parallel_tool_calls
        if self.stream:
            payload["stream"] = True
        return payload


class ChatTransport(ABC):
    """
    Base template-method primitive for chat-completion transports.

    Transports are stateless with respect to conversation history: the swarm
    owns the history and sends all of it with every request.

    Public contract
    ---------------
    - ``complete(request) -> Message`` performs one exchange (with retries).
    - ``stream(request) -> Iterator[dict]`` yields sparse delta fragments for one
      exchange. Only opening the stream is retried; an interruption after the
      first fragment raises :class:`TransportError` from the iterator.

    Every failure leaving these methods is a :class:`TransportError`.
    ``max_retries`` counts total attempts, so ``1`` disables retrying.
    """

    def __init__(
        self,
        *,
        name: Optional[str] = None,
        max_retries: int = 3,
        retry_strategy: Optional[RetryStrategy] = None,
    ) -> None:
        self._name = name or type(self).__name__
        self._max_retries = max(1, int(max_retries))
        self._retry_strategy = retry_strategy or RetryStrategy()

    @classmethod
    def config_kwargs(cls, config: SwarmConfig) -> Dict[str, Any]:
        return {"max_retries": config.max_retries, "retry_strategy": config.retry_strategy}

    # --------------------------------------------------------------------- #
    # Public surface
    # --------------------------------------------------------------------- #
    @property
    def name(self) -> str:
        return self._name

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def complete(self, request: CompletionRequest) -> Message:
        start = time.time()
        try:
            payload = self._build_provider_payload(request)
            response = self._call_with_retries(lambda: self._call_provider(payload))
            message = self._extract_message(response)
            if not isinstance(message, Message):
                raise TransportError(
                    f"{type(self).__name__}._extract_message must return Message; got {type(message)!r}",
                    kind="malformed_response",
                )
            if not message.role:
                message.role = "assistant"
            if message.content is None and not message.has_function_call:
                raise TransportError(f"{self._name}: empty completion", kind="empty_response")
            return message
        except SwarmError:
            # Already normalized; bubble up unchanged.
            raise
        except Exception as exc:
            raise self._translate_error(exc) from exc
        finally:
            logger.debug("ChatTransport %s.complete finished in %.3fs", self._name, time.time() - start)

    def stream(self, request: CompletionRequest) -> Iterator[Dict[str, Any]]:
        payload = self._build_provider_payload(request)
        handle = self._call_with_retries(lambda: self._open_stream(payload))
        try:
            for fragment in self._iter_fragments(handle):
                yield fragment
        except TransportError:
            raise
        except Exception as exc:
            raise self._translate_error(exc) from exc
        finally:
            try:
                self._close_stream(handle)
            except Exception as exc:  # pragma: no cover - best-effort cleanup
                logger.debug("ChatTransport %s close raised %r; ignoring", self._name, exc)

    # --------------------------------------------------------------------- #
    # Retry loop
    # --------------------------------------------------------------------- #
    def _call_with_retries(self, call: Callable[[], Any]) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return call()
            except Exception as exc:
                error = exc if isinstance(exc, TransportError) else self._translate_error(exc)
                if not self._should_retry(error, attempt):
                    if error is exc:
                        raise
                    raise error from exc
                sleep = self._retry_strategy.delay_for(attempt)
                # Add a little jitter to avoid thundering herds.
                sleep *= random.uniform(0.8, 1.2)
                logger.debug(
                    "ChatTransport %s attempt %d failed with %r; retrying in %.2fs",
                    self._name,
                    attempt,
                    error,
                    sleep,
                )
                time.sleep(sleep)

    def _should_retry(self, error: TransportError, attempt: int) -> bool:
        if attempt >= self._max_retries:
            return False
        return error.retriable

    def _translate_error(self, exc: BaseException) -> TransportError:
        """Map a foreign exception onto :class:`TransportError`.

        Subclasses extend this to recognize their SDK's error types.
        """
        if isinstance(exc, TransportError):
            return exc
        if isinstance(exc, TimeoutError):
            return TransportError(f"{self._name}: request timed out", kind="timeout", retriable=True)
        if isinstance(exc, ConnectionError):
            return TransportError(f"{self._name}: connection failed: {exc}", kind="network", retriable=True)
        return TransportError(f"{self._name}: {type(exc).__name__}: {exc}", kind="unknown")

    # --------------------------------------------------------------------- #
    # Hooks
    # --------------------------------------------------------------------- #
    def _build_provider_payload(self, request: CompletionRequest) -> Dict[str, Any]:
        return request.to_payload()

    @abstractmethod
    def _call_provider(self, payload: Mapping[str, Any]) -> Any:
        """Perform one non-streaming exchange."""
        raise NotImplementedError

    @abstractmethod
    def _extract_message(self, response: Any) -> Message:
        """Extract the assistant message from a provider response."""
        raise NotImplementedError

    def _open_stream(self, payload: Mapping[str, Any]) -> Any:
        raise TransportError(f"{self._name} does not support streaming", kind="unsupported")

    def _iter_fragments(self, handle: Any) -> Iterator[Dict[str, Any]]:
        raise TransportError(f"{self._name} does not support streaming", kind="unsupported")

    def _close_stream(self, handle: Any) -> None:
        close = getattr(handle, "close", None)
        if callable(close):
            close()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self._name,
            "max_retries": self._max_retries,
            "provider": type(self).__name__,
        }
