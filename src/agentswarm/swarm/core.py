"""
Conversation orchestrator.

``Swarm.run`` drives one conversation turn by turn::

    Init -> TurnLoop -> (StepExecuting | FunctionDispatch) -> TurnLoop -> Terminated

A turn renders the active agent's instructions against the current context and
records them as a system message when they changed. The first system message
goes ahead of the caller's messages, later ones are appended. The whole history
is sent to the transport and the reply interpreted: plain content ends the
turn, a function-call directive is dispatched and every result is recorded as
a ``function`` message in request order.

Without a step plan, turns repeat until the model answers with plain content
or ``max_turns`` completions were issued. With a plan (a ``<steps>`` block in
the starting agent's instructions) each step runs in ascending order:
``run_once`` is one turn, ``loop`` repeats turns until a break condition in the
context is truthy or ``max_loop_iterations`` is reached.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from ..agents.base import Agent
from ..agents.registry import AgentRegistry
from ..core.Config import ROLE_SYSTEM, SwarmConfig
from ..core.Exceptions import SwarmError, TransportError
from ..core.Messages import (
    ContextVariables,
    FunctionCall,
    Message,
    Response,
    is_truthy,
    stringify_values,
    substitute_placeholders,
)
from ..engines.base import ChatTransport, CompletionRequest
from ..engines.openai import OpenAITransport
from ..engines.streaming import StreamAssembler
from ..tools.dispatcher import FunctionDispatcher
from ..workflows.steps import Step, Steps, extract_steps_block, split_instructions
from .validation import validate_api_key, validate_request, validate_url

logger = logging.getLogger(__name__)

__all__ = ["Swarm", "debug_log"]

MessageLike = Union[Message, Mapping[str, Any]]


def debug_log(debug: bool, message: str, *args: Any) -> None:
    """Trace line for a run: INFO when the run's ``debug`` flag is set, DEBUG otherwise."""
    logger.log(logging.INFO if debug else logging.DEBUG, message, *args)


# ───────────────────────────────────────────────────────────────────────────────
# Per-run state
# ───────────────────────────────────────────────────────────────────────────────
@dataclass
class _RunState:
    agent: Agent
    registry: AgentRegistry
    history: List[Message]
    context: ContextVariables
    max_turns: int
    model_override: Optional[str] = None
    stream: bool = False
    debug: bool = False
    turns: int = 0
    loop_iterations: Dict[int, int] = field(default_factory=dict)
    loop_caps_reached: List[int] = field(default_factory=list)

    @property
    def has_budget(self) -> bool:
        return self.turns < self.max_turns

    def to_response(self) -> Response:
        return Response(
            messages=list(self.history),
            agent=self.agent,
            context_variables=dict(self.context),
            turns=self.turns,
            loop_iterations=dict(self.loop_iterations),
            loop_caps_reached=list(self.loop_caps_reached),
        )


# ───────────────────────────────────────────────────────────────────────────────
# Swarm
# ───────────────────────────────────────────────────────────────────────────────
class Swarm:
    """
    Orchestrates multi-turn conversations between a caller and agents.

    Parameters
    ----------
    transport : ChatTransport, optional
        Chat-completion transport. Defaults to an :class:`OpenAITransport`
        built from ``api_key`` (or ``OPENAI_API_KEY``) and ``config``.
    config : SwarmConfig, optional
        Run-time policy; validated on construction.
    api_key : str, optional
        Used only when ``transport`` is not given.
    agents : iterable of Agent
        Agents available for step-plan lookups and handoffs.
    dispatcher : FunctionDispatcher, optional
        Function dispatcher (override for a custom worker count).
    """

    def __init__(
        self,
        transport: Optional[ChatTransport] = None,
        *,
        config: Optional[SwarmConfig] = None,
        api_key: Optional[str] = None,
        agents: Iterable[Agent] = (),
        dispatcher: Optional[FunctionDispatcher] = None,
    ) -> None:
        self._config = (config or SwarmConfig()).validate()
        validate_url(self._config.api_url, self._config.valid_api_url_prefixes)

        if transport is None:
            key = api_key or os.getenv("OPENAI_API_KEY")
            validate_api_key(key, prefix=self._config.api_key_prefix)
            transport = OpenAITransport(key, config=self._config)
        self._transport = transport
        self._registry = AgentRegistry(agents)
        self._dispatcher = dispatcher or FunctionDispatcher()

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #
    @property
    def config(self) -> SwarmConfig:
        return self._config

    @property
    def transport(self) -> ChatTransport:
        return self._transport

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    def register_agent(self, agent: Agent, *, name_collision_mode: str = "raise") -> str:
        return self._registry.register(agent, name_collision_mode=name_collision_mode)

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #
    def run(
        self,
        agent: Agent,
        messages: Sequence[MessageLike],
        context_variables: Optional[Mapping[str, Any]] = None,
        model_override: Optional[str] = None,
        stream: bool = False,
        debug: bool = False,
        max_turns: Optional[int] = None,
    ) -> Response:
        """
        Run a conversation starting with ``agent`` and return the full trace.

        Raises :class:`ValidationError` or :class:`ParseError` before any network
        activity. Fatal errors raised later carry the partial :class:`Response`
        on ``partial_response``. Hitting ``max_turns`` is not an error.
        """
        history = [self._coerce_message(m) for m in messages]
        context = stringify_values(context_variables or {})

        _, steps = split_instructions(agent.render_instructions(context))
        validate_request(
            agent,
            history,
            config=self._config,
            model_override=model_override,
            max_turns=max_turns,
            has_step_plan=bool(steps),
        )

        registry = self._registry.copy()
        registry.register(agent, name_collision_mode="replace")
        state = _RunState(
            agent=agent,
            registry=registry,
            history=history,
            context=context,
            max_turns=max_turns if max_turns is not None else self._config.max_turns,
            model_override=model_override,
            stream=stream,
            debug=debug,
        )

        logger.info(f"[Swarm.run started] agent={agent.name} steps={len(steps)} stream={stream}")
        try:
            if steps:
                self._run_steps(state, steps)
            else:
                self._run_plain(state)
        except SwarmError as exc:
            if exc.partial_response is None:
                exc.partial_response = state.to_response()
            logger.info(f"[Swarm.run failed] agent={state.agent.name} turns={state.turns} error={exc.kind}")
            raise
        logger.info(f"[Swarm.run finished] agent={state.agent.name} turns={state.turns}")
        return state.to_response()

    def stream_chat(
        self,
        agent: Agent,
        history: Sequence[MessageLike],
        context_variables: Optional[Mapping[str, Any]] = None,
        model_override: Optional[str] = None,
        debug: bool = False,
    ) -> Iterator[Message]:
        """
        Stream one completion for ``agent`` over ``history``.

        Yields a snapshot of the assembled assistant message per fragment. The
        history is not modified and no function calls are dispatched. Input is
        validated eagerly, before the returned iterator is consumed.
        """
        messages = [self._coerce_message(m) for m in history]
        context = stringify_values(context_variables or {})
        validate_request(agent, messages, config=self._config, model_override=model_override)

        self._place_system(messages, self._system_text(agent, context))
        request = self._build_request(agent, messages, model_override, stream=True)
        return self._stream_snapshots(request, debug)

    def _stream_snapshots(self, request: CompletionRequest, debug: bool) -> Iterator[Message]:
        assembler = StreamAssembler()
        for snapshot in assembler.stream(self._transport.stream(request)):
            debug_log(debug, "Swarm.stream_chat fragment %d: %r", assembler.fragments_seen, snapshot.content)
            yield snapshot

    # ------------------------------------------------------------------ #
    # Plans
    # ------------------------------------------------------------------ #
    def _run_plain(self, state: _RunState) -> None:
        while state.has_budget:
            message = self._turn(state)
            if not message.has_function_call:
                return
        debug_log(state.debug, "Swarm.run reached max_turns=%d", state.max_turns)

    def _run_steps(self, state: _RunState, steps: Steps) -> None:
        for step in steps:
            if step.agent:
                self._handoff(state, state.registry.get(step.agent))
            debug_log(state.debug, "Swarm.run executing step %d (%s)", step.number, step.action.value)
            if step.is_loop:
                self._run_loop(state, step)
            else:
                self._step_turn(state, step)

    def _run_loop(self, state: _RunState, step: Step) -> None:
        control = self._config.loop_control
        iterations = 0
        while True:
            if iterations >= self._config.max_loop_iterations:
                state.loop_caps_reached.append(step.number)
                debug_log(state.debug, "Swarm.run step %d reached max_loop_iterations", step.number)
                return
            if iterations and control.iteration_delay > 0:
                time.sleep(control.iteration_delay)

            self._step_turn(state, step)
            iterations += 1
            state.loop_iterations[step.number] = iterations

            if any(is_truthy(state.context.get(key)) for key in control.break_conditions):
                debug_log(state.debug, "Swarm.run step %d break condition met after %d iteration(s)", step.number, iterations)
                return

    def _step_turn(self, state: _RunState, step: Step) -> Message:
        self._sync_system(state)
        state.history.append(Message.user(substitute_placeholders(step.prompt, state.context)))
        return self._turn(state)

    # ------------------------------------------------------------------ #
    # Turns
    # ------------------------------------------------------------------ #
    def _sync_system(self, state: _RunState) -> None:
        self._place_system(state.history, self._system_text(state.agent, state.context))

    def _turn(self, state: _RunState) -> Message:
        agent = state.agent
        self._sync_system(state)

        request = self._build_request(agent, state.history, state.model_override, stream=state.stream)
        state.turns += 1
        debug_log(state.debug, "Swarm.run turn %d: agent=%s messages=%d", state.turns, agent.name, len(state.history))

        message = self._complete(state, request)
        message.name = agent.name
        message.assign_call_ids()
        state.history.append(message)

        calls = message.requested_calls()
        if calls:
            self._dispatch(state, calls)
        return message

    def _complete(self, state: _RunState, request: CompletionRequest) -> Message:
        if not state.stream:
            return self._transport.complete(request)

        assembler = StreamAssembler()
        for snapshot in assembler.stream(self._transport.stream(request)):
            debug_log(state.debug, "Swarm.run stream fragment %d: %r", assembler.fragments_seen, snapshot.content)
        message = assembler.message
        if message.content is None and not message.has_function_call:
            raise TransportError("stream ended without content or function call", kind="empty_response")
        return message

    def _dispatch(self, state: _RunState, calls: List[FunctionCall]) -> None:
        debug_log(state.debug, "Swarm.run dispatching %s", [c.name for c in calls])
        batch = self._dispatcher.dispatch(state.agent, calls, state.context)
        state.history.extend(batch.messages)

        errors = batch.errors
        if errors and self._config.propagate_function_errors:
            raise errors[0]

        update = batch.context_update
        if update is not None:
            state.context = update
        target = batch.handoff
        if target is not None:
            self._handoff(state, target)

    def _handoff(self, state: _RunState, target: Agent) -> None:
        if target is state.agent:
            return
        state.registry.register(target, name_collision_mode="replace")
        logger.info(f"[Swarm.run handoff] {state.agent.name} -> {target.name}")
        state.agent = target

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _build_request(
        self,
        agent: Agent,
        history: Sequence[Message],
        model_override: Optional[str],
        *,
        stream: bool,
    ) -> CompletionRequest:
        return CompletionRequest(
            model=model_override or agent.model,
            messages=list(history),
            tools=agent.tools(),
            tool_choice=agent.tool_choice(),
            parallel_tool_calls=agent.parallel_tool_calls if agent.functions else None,
            stream=stream,
        )

    @staticmethod
    def _system_text(agent: Agent, context: Mapping[str, str]) -> str:
        text, _ = extract_steps_block(agent.render_instructions(context))
        return substitute_placeholders(text, context)

    @classmethod
    def _place_system(cls, history: List[Message], system_text: str) -> None:
        if not system_text:
            return
        last = cls._last_system_text(history)
        if last is None:
            history.insert(0, Message.system(system_text))
        elif last != system_text:
            history.append(Message.system(system_text))

    @staticmethod
    def _last_system_text(history: Sequence[Message]) -> Optional[str]:
        for msg in reversed(history):
            if msg.role == ROLE_SYSTEM:
                return msg.content
        return None

    @staticmethod
    def _coerce_message(message: MessageLike) -> Message:
        if isinstance(message, Message):
            return message.copy()
        if isinstance(message, Mapping):
            return Message.from_dict(message)
        raise TypeError(f"messages must be Message or mapping, got {type(message)!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self._config.to_dict(),
            "transport": self._transport.to_dict(),
            "agents": self._registry.names,
        }
