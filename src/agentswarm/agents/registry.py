from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Iterable, Iterator, List, Optional

from ..core.Exceptions import AgentNotFoundError, RegistrationError
from .base import Agent

logger = logging.getLogger(__name__)

__all__ = ["AgentRegistry"]


class AgentRegistry:
    """
    Name-keyed set of agents available for handoff.

    Each run works on its own copy (:meth:`copy`), so agents registered during a
    run (handoff targets, step agents) never leak into the swarm's registry.
    """

    def __init__(self, agents: Iterable[Agent] = ()) -> None:
        self._agents: "OrderedDict[str, Agent]" = OrderedDict()
        for agent in agents:
            self.register(agent)

    def register(self, agent: Agent, *, name_collision_mode: str = "raise") -> str:
        """Add ``agent`` under its name. ``name_collision_mode`` is raise|skip|replace."""
        if name_collision_mode not in ("raise", "skip", "replace"):
            raise RegistrationError("name_collision_mode must be one of: 'raise', 'skip', 'replace'.")
        if not isinstance(agent, Agent):
            raise RegistrationError(f"AgentRegistry.register expects an Agent, got {type(agent)!r}")
        if not agent.name:
            raise RegistrationError("AgentRegistry.register: agent name must be non-empty")

        key = agent.name
        if key in self._agents:
            if name_collision_mode == "raise" and self._agents[key] is not agent:
                raise RegistrationError(f"AgentRegistry: agent already registered: {key}")
            if name_collision_mode == "skip":
                return key
        self._agents[key] = agent
        logger.debug("AgentRegistry registered %s", key)
        return key

    def batch_register(self, agents: Iterable[Agent], *, name_collision_mode: str = "raise") -> List[str]:
        return [self.register(a, name_collision_mode=name_collision_mode) for a in agents]

    def get(self, name: str) -> Agent:
        try:
            return self._agents[name]
        except KeyError:
            raise AgentNotFoundError(name) from None

    def find(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    def remove(self, name: str) -> bool:
        return self._agents.pop(name, None) is not None

    def copy(self) -> "AgentRegistry":
        clone = AgentRegistry()
        clone._agents = OrderedDict(self._agents)
        return clone

    @property
    def names(self) -> List[str]:
        return list(self._agents.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def to_dict(self) -> Dict[str, Dict[str, object]]:
        return {name: agent.to_dict() for name, agent in self._agents.items()}
