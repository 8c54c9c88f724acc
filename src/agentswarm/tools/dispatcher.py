"""
Function dispatcher

Resolves the function calls requested by a model turn against the active agent,
executes them and turns every outcome into a ``function`` message.

- a single call (or an agent with ``parallel_tool_calls`` disabled) runs inline
- several calls on a parallel agent run on a thread pool; the dispatcher waits
  for all of them (join barrier) and reassembles results in request order
- failures are isolated per call: a failing call yields an error message while
  its siblings still record their results
- each call sees its own snapshot of the context variables
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from ..core.Exceptions import FunctionError, FunctionExecutionError, FunctionNotFoundError
from ..core.Messages import ContextVariables, FunctionCall, Message, stringify_values
from .base import ResultKind, ResultType

if TYPE_CHECKING:  # pragma: no cover
    from ..agents.base import Agent

logger = logging.getLogger(__name__)

__all__ = ["DispatchOutcome", "DispatchBatch", "FunctionDispatcher", "decode_arguments"]


def decode_arguments(name: str, arguments: Optional[str]) -> ContextVariables:
    """Decode a call's JSON argument payload into ``dict[str, str]``."""
    if arguments is None or not arguments.strip():
        return {}
    try:
        decoded = json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise FunctionExecutionError(name, f"invalid JSON arguments: {exc}") from exc
    if decoded is None:
        return {}
    if not isinstance(decoded, Mapping):
        raise FunctionExecutionError(name, f"arguments must decode to an object, got {type(decoded).__name__}")
    return stringify_values(decoded)


# ───────────────────────────────────────────────────────────────────────────────
# Outcomes
# ───────────────────────────────────────────────────────────────────────────────
@dataclass(slots=True)
class DispatchOutcome:
    """Result of one requested call, in the slot matching its request position."""
    index: int
    call: FunctionCall
    result: Optional[ResultType] = None
    error: Optional[FunctionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def content(self) -> str:
        if self.error is not None:
            return f"Error: {self.error}"
        return self.result.content if self.result is not None else ""

    def to_message(self) -> Message:
        return Message.function_result(self.call.name, self.content, tool_call_id=self.call.id)


@dataclass(slots=True)
class DispatchBatch:
    """All outcomes of one turn's calls, in request order."""
    outcomes: List[DispatchOutcome] = field(default_factory=list)

    @property
    def messages(self) -> List[Message]:
        return [o.to_message() for o in self.outcomes]

    @property
    def errors(self) -> List[FunctionError]:
        return [o.error for o in self.outcomes if o.error is not None]

    @property
    def handoff(self) -> Optional["Agent"]:
        """Agent of the last successful AGENT result (request order)."""
        agent = None
        for o in self.outcomes:
            if o.result is not None and o.result.kind is ResultKind.AGENT:
                agent = o.result.agent
        return agent

    @property
    def context_update(self) -> Optional[ContextVariables]:
        """Context of the last successful CONTEXT_VARIABLES result (request order)."""
        update = None
        for o in self.outcomes:
            if o.result is not None and o.result.kind is ResultKind.CONTEXT_VARIABLES:
                update = dict(o.result.context_variables)
        return update


# ───────────────────────────────────────────────────────────────────────────────
# Dispatcher
# ───────────────────────────────────────────────────────────────────────────────
class FunctionDispatcher:
    """Executes requested calls against an agent's functions."""

    def __init__(self, *, max_workers: Optional[int] = None) -> None:
        self._max_workers = max_workers

    def dispatch(
        self,
        agent: "Agent",
        calls: Sequence[FunctionCall],
        context_variables: Mapping[str, str],
    ) -> DispatchBatch:
        calls = list(calls)
        outcomes = [DispatchOutcome(index=i, call=c) for i, c in enumerate(calls)]
        if not calls:
            return DispatchBatch(outcomes)

        if len(calls) == 1 or not agent.parallel_tool_calls:
            for outcome in outcomes:
                self._run_into(agent, outcome, dict(context_variables))
        else:
            logger.debug(
                "FunctionDispatcher running %d calls concurrently for %s", len(calls), agent.name
            )
            executor = ThreadPoolExecutor(max_workers=self._max_workers)
            try:
                futures = {
                    executor.submit(self._run_into, agent, outcome, dict(context_variables)): outcome.index
                    for outcome in outcomes
                }
                for fut in as_completed(futures):
                    # _run_into records its own failures; anything surfacing here is a bug.
                    fut.result()
            finally:
                executor.shutdown(wait=True, cancel_futures=True)

        return DispatchBatch(outcomes)

    def _run_into(self, agent: "Agent", outcome: DispatchOutcome, snapshot: ContextVariables) -> None:
        try:
            outcome.result = self.execute(agent, outcome.call, snapshot)
        except FunctionError as exc:
            logger.debug("FunctionDispatcher call %s failed: %s", outcome.call.name, exc)
            outcome.error = exc

    def execute(self, agent: "Agent", call: FunctionCall, context_variables: ContextVariables) -> ResultType:
        """Run one call; every failure surfaces as a :class:`FunctionError`."""
        fn = agent.get_function(call.name)
        if fn is None:
            raise FunctionNotFoundError(call.name)

        args = decode_arguments(call.name, call.arguments)
        inputs: ContextVariables = {**context_variables, **args} if fn.accepts_context_variables else args
        try:
            return fn.invoke(inputs)
        except FunctionError:
            raise
        except Exception as exc:
            raise FunctionExecutionError(call.name, exc) from exc
