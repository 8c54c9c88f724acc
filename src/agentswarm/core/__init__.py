from .Config import SwarmConfig, LoopControl, RetryStrategy, load_config
from .Exceptions import (
    SwarmError,
    ConfigError,
    ValidationError,
    Violation,
    ParseError,
    TransportError,
    FunctionError,
    FunctionNotFoundError,
    FunctionExecutionError,
    AgentNotFoundError,
    RegistrationError,
)
from .Messages import (
    ContextVariables,
    FunctionCall,
    Message,
    Response,
    substitute_placeholders,
)

__all__ = [
    "SwarmConfig",
    "LoopControl",
    "RetryStrategy",
    "load_config",
    "SwarmError",
    "ConfigError",
    "ValidationError",
    "Violation",
    "ParseError",
    "TransportError",
    "FunctionError",
    "FunctionNotFoundError",
    "FunctionExecutionError",
    "AgentNotFoundError",
    "RegistrationError",
    "ContextVariables",
    "FunctionCall",
    "Message",
    "Response",
    "substitute_placeholders",
]
