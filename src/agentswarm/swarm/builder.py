from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from ..agents.base import Agent
from ..core.Config import LoopControl, RetryStrategy, SwarmConfig, load_config
from ..engines.base import ChatTransport
from ..tools.dispatcher import FunctionDispatcher
from .core import Swarm

logger = logging.getLogger(__name__)

__all__ = ["SwarmBuilder"]


class SwarmBuilder:
    """
    Fluent construction of a :class:`Swarm`.

    Every ``with_*`` call returns the builder; :meth:`build` validates the final
    configuration (and the API URL/key when no transport was supplied).

    Example
    -------
    >>> swarm = (
    ...     SwarmBuilder()
    ...     .with_api_key("sk-...")
    ...     .with_max_turns(5)
    ...     .with_request_timeout(60)
    ...     .build()
    ... )
    """

    def __init__(self, config: Optional[SwarmConfig] = None) -> None:
        self._config = config or SwarmConfig()
        self._api_key: Optional[str] = None
        self._transport: Optional[ChatTransport] = None
        self._dispatcher: Optional[FunctionDispatcher] = None
        self._agents: List[Agent] = []

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "SwarmBuilder":
        """Start from :func:`load_config` (``.env`` + environment)."""
        return cls(load_config(env_file))

    def _set(self, **changes: Any) -> "SwarmBuilder":
        self._config = replace(self._config, **changes)
        return self

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #
    def with_config(self, config: SwarmConfig) -> "SwarmBuilder":
        self._config = config
        return self

    def with_api_key(self, api_key: str) -> "SwarmBuilder":
        self._api_key = api_key
        return self

    def with_api_url(self, api_url: str) -> "SwarmBuilder":
        return self._set(api_url=api_url)

    def with_api_version(self, api_version: str) -> "SwarmBuilder":
        return self._set(api_version=api_version)

    def with_request_timeout(self, seconds: float) -> "SwarmBuilder":
        return self._set(request_timeout=float(seconds))

    def with_connect_timeout(self, seconds: float) -> "SwarmBuilder":
        return self._set(connect_timeout=float(seconds))

    def with_max_retries(self, max_retries: int) -> "SwarmBuilder":
        return self._set(max_retries=int(max_retries))

    def with_max_turns(self, max_turns: int) -> "SwarmBuilder":
        return self._set(max_turns=int(max_turns))

    def with_max_loop_iterations(self, max_loop_iterations: int) -> "SwarmBuilder":
        return self._set(max_loop_iterations=int(max_loop_iterations))

    def with_valid_model_prefixes(self, prefixes: Iterable[str]) -> "SwarmBuilder":
        return self._set(valid_model_prefixes=tuple(prefixes))

    def with_valid_api_url_prefixes(self, prefixes: Iterable[str]) -> "SwarmBuilder":
        return self._set(valid_api_url_prefixes=tuple(prefixes))

    def with_loop_control(self, loop_control: LoopControl) -> "SwarmBuilder":
        return self._set(loop_control=loop_control)

    def with_retry_strategy(self, retry_strategy: RetryStrategy) -> "SwarmBuilder":
        return self._set(retry_strategy=retry_strategy)

    def with_propagate_function_errors(self, enabled: bool = True) -> "SwarmBuilder":
        return self._set(propagate_function_errors=bool(enabled))

    # ------------------------------------------------------------------ #
    # Collaborators
    # ------------------------------------------------------------------ #
    def with_transport(self, transport: ChatTransport) -> "SwarmBuilder":
        self._transport = transport
        return self

    def with_dispatcher(self, dispatcher: FunctionDispatcher) -> "SwarmBuilder":
        self._dispatcher = dispatcher
        return self

    def with_agent(self, agent: Agent) -> "SwarmBuilder":
        self._agents.append(agent)
        return self

    def with_agents(self, agents: Iterable[Agent]) -> "SwarmBuilder":
        self._agents.extend(agents)
        return self

    @property
    def config(self) -> SwarmConfig:
        return self._config

    def build(self) -> Swarm:
        logger.debug("SwarmBuilder.build: %s", self._config.to_dict())
        return Swarm(
            self._transport,
            config=self._config,
            api_key=self._api_key,
            agents=self._agents,
            dispatcher=self._dispatcher,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self._config.to_dict(),
            "agents": [a.name for a in self._agents],
            "transport": type(self._transport).__name__ if self._transport is not None else None,
        }
