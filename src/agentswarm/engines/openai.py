from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterator, Mapping, Optional

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    OpenAI,
)

from ..core.Config import SwarmConfig
from ..core.Exceptions import ConfigError, TransportError
from ..core.Messages import Message
from .base import ChatTransport

logger = logging.getLogger(__name__)

__all__ = ["OpenAITransport"]


class OpenAITransport(ChatTransport):
    """
    Chat-completions transport on top of the official ``openai`` SDK.

    The SDK's own retry loop is disabled (``max_retries=0``) so that retries
    follow :class:`~agentswarm.core.Config.RetryStrategy`. Timeouts map onto an
    ``httpx.Timeout`` built from ``request_timeout`` and ``connect_timeout``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        config: Optional[SwarmConfig] = None,
        client: Optional[OpenAI] = None,
        http_client: Optional[httpx.Client] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Parameters
        ----------
        api_key:
            Optional API key; if omitted, ``OPENAI_API_KEY`` from the environment is used.
        config:
            Swarm configuration supplying the base URL, timeouts and retry policy.
        client:
            Pre-built ``OpenAI`` client; when given, ``api_key``/``http_client`` are ignored.
        http_client:
            Optional ``httpx.Client`` handed to the SDK (proxies, custom transports).
        """
        self._config = config or SwarmConfig()
        super().__init__(name=name or "openai", **self.config_kwargs(self._config))

        if client is None:
            key = api_key or os.getenv("OPENAI_API_KEY")
            if not key:
                raise ConfigError("OpenAITransport requires an API key (argument or OPENAI_API_KEY)", field="api_key")
            client = OpenAI(
                api_key=key,
                base_url=self._config.api_url,
                timeout=httpx.Timeout(self._config.request_timeout, connect=self._config.connect_timeout),
                max_retries=0,
                http_client=http_client,
            )
        self._client = client

    @property
    def client(self) -> OpenAI:
        return self._client

    # ------------------------------------------------------------------ #
    # Template hooks
    # ------------------------------------------------------------------ #
    def _call_provider(self, payload: Mapping[str, Any]) -> Any:
        logger.debug("OpenAITransport request: model=%s messages=%d", payload.get("model"), len(payload.get("messages", [])))
        return self._client.chat.completions.create(**payload)

    def _extract_message(self, response: Any) -> Message:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise TransportError(f"{self.name}: response contained no choices", kind="empty_response")
        raw = choices[0].message
        data = raw.model_dump(exclude_none=True) if hasattr(raw, "model_dump") else dict(raw)
        return Message.from_dict(data)

    def _open_stream(self, payload: Mapping[str, Any]) -> Any:
        return self._client.chat.completions.create(**{**payload, "stream": True})

    def _iter_fragments(self, handle: Any) -> Iterator[Dict[str, Any]]:
        for chunk in handle:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta.model_dump(exclude_none=True) if choice.delta is not None else {}
            if choice.finish_reason is not None:
                delta["finish_reason"] = choice.finish_reason
            yield delta

    def _translate_error(self, exc: BaseException) -> TransportError:
        # APITimeoutError subclasses APIConnectionError, so check it first.
        if isinstance(exc, (APITimeoutError, httpx.TimeoutException)):
            return TransportError(f"{self.name}: request timed out", kind="timeout", retriable=True)
        if isinstance(exc, (APIConnectionError, httpx.TransportError)):
            return TransportError(f"{self.name}: connection failed: {exc}", kind="network", retriable=True)
        if isinstance(exc, APIStatusError):
            return TransportError.from_status(exc.status_code, f"{self.name}: API error {exc.status_code}: {exc.message}")
        return super()._translate_error(exc)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({
            "api_url": self._config.api_url,
            "request_timeout": self._config.request_timeout,
            "connect_timeout": self._config.connect_timeout,
        })
        return out
