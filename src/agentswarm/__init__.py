from importlib.metadata import PackageNotFoundError, version

try:  # populated when installed or when a wheel is built
    __version__ = version("agentswarm")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

from .core.Config import SwarmConfig, LoopControl, RetryStrategy, load_config
from .core.Exceptions import SwarmError, ValidationError, ParseError, TransportError
from .core.Messages import FunctionCall, Message, Response
from .agents import Agent, Instructions, AgentRegistry
from .tools import AgentFunction, ResultType
from .swarm import Swarm, SwarmBuilder

__all__ = [
    "Agent",
    "AgentFunction",
    "AgentRegistry",
    "FunctionCall",
    "Instructions",
    "LoopControl",
    "Message",
    "ParseError",
    "Response",
    "ResultType",
    "RetryStrategy",
    "Swarm",
    "SwarmBuilder",
    "SwarmConfig",
    "SwarmError",
    "TransportError",
    "ValidationError",
    "load_config",
    ]
