from .base import Agent, Instructions
from .registry import AgentRegistry

__all__ = ["Agent",
           "Instructions",
           "AgentRegistry"]
