from .base import (
    AgentFunction,
    ResultKind,
    ResultType,
)
from .dispatcher import FunctionDispatcher, DispatchBatch, DispatchOutcome

__all__ = ["AgentFunction",
           "ResultKind",
           "ResultType",
           "FunctionDispatcher",
           "DispatchBatch",
           "DispatchOutcome",]
