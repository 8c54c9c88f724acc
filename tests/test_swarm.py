"""Orchestrator tests against a scripted in-memory transport."""

import pytest

from agentswarm.agents.base import Agent, Instructions
from agentswarm.core.Exceptions import (
    AgentNotFoundError,
    FunctionExecutionError,
    ParseError,
    TransportError,
    ValidationError,
)
from agentswarm.core.Messages import Message
from agentswarm.tools.base import AgentFunction
from tests.fixtures.transports import call, calls, function_messages, reply


def _plan(*steps):
    body = "".join(
        f'<step number="{n}" action="{action}"{agent_attr}><prompt>{prompt}</prompt></step>'
        for n, action, prompt, agent_attr in steps
    )
    return f"You follow the plan.<steps>{body}</steps>"


# ============================================================================
# PLAIN MODE
# ============================================================================


def test_plain_reply_ends_run(make_swarm, make_agent):
    swarm, transport = make_swarm([reply("Hi there")])
    response = swarm.run(make_agent(), [Message.user("hello")])

    assert response.turns == 1
    assert [m.role for m in response.messages] == ["system", "user", "assistant"]
    assert response.messages[-1].content == "Hi there"
    assert response.messages[-1].name == "Assistant"
    assert transport.payloads[0]["model"] == "gpt-4o"
    assert "tools" not in transport.payloads[0]


def test_auto_function_appends_exactly_one_function_message(make_swarm, make_agent):
    def weather(args):
        """Current weather for a city."""
        return f"sunny in {args['city']}"

    agent = make_agent(functions=[AgentFunction("weather", weather)], function_call="auto")
    swarm, transport = make_swarm([call("weather", city="Paris"), reply("It is sunny.")])
    response = swarm.run(agent, [Message.user("weather in Paris?")])

    results = function_messages(response.messages)
    assert len(results) == 1
    assert results[0].content == "sunny in Paris"
    assert results[0].tool_call_id == "call_0"
    assert response.turns == 2
    assert transport.payloads[0]["tool_choice"] == "auto"
    assert transport.payloads[0]["tools"][0]["function"]["description"] == "Current weather for a city."
    assert transport.payloads[1]["messages"][-1] == {"role": "tool", "tool_call_id": "call_0", "content": "sunny in Paris"}


def test_max_turns_is_graceful(make_swarm, make_agent):
    agent = make_agent(functions=[AgentFunction("ping", lambda args: "pong")])
    swarm, transport = make_swarm([call("ping")] * 5)
    response = swarm.run(agent, [Message.user("go")], max_turns=3)

    assert response.turns == 3
    assert len(function_messages(response.messages)) == 3
    assert transport.remaining == 2


def test_system_message_only_appended_when_text_changes(make_swarm):
    agent = Agent(
        name="Counter",
        instructions=lambda ctx: f"Count is {ctx.get('count', '0')}.",
        functions=[
            AgentFunction("noop", lambda args: "same"),
            AgentFunction("bump", lambda args: {"count": "1"}),
        ],
    )
    swarm, _ = make_swarm([call("noop"), call("bump"), reply("done")])
    response = swarm.run(agent, [Message.user("go")])

    systems = [m.content for m in response.messages if m.role == "system"]
    assert systems == ["Count is 0.", "Count is 1."]
    assert response.context_variables == {"count": "1"}


def test_missing_placeholder_renders_empty(make_swarm):
    agent = Agent(name="Greeter", instructions="Greet {name} from {city}.")
    swarm, transport = make_swarm([reply("hello")])
    response = swarm.run(agent, [Message.user("hi")], context_variables={"name": "Ada"})

    assert response.messages[0].content == "Greet Ada from ."
    assert transport.payloads[0]["messages"][0] == {"role": "system", "content": "Greet Ada from ."}


def test_handoff_switches_active_agent(make_swarm, make_agent):
    specialist = make_agent("Specialist", instructions="You are the specialist.")
    triage = make_agent("Triage", functions=[AgentFunction("transfer", lambda args: specialist)])
    swarm, transport = make_swarm([call("transfer"), reply("Specialist here.")])
    response = swarm.run(triage, [Message.user("help")])

    assert response.agent is specialist
    assert function_messages(response.messages)[0].content == '{"assistant": "Specialist"}'
    assert response.messages[-1].name == "Specialist"
    assert transport.payloads[1]["messages"][-1] == {"role": "system", "content": "You are the specialist."}


def test_parallel_calls_recorded_in_request_order(make_swarm, make_agent):
    def boom(args):
        raise RuntimeError("exploded")

    agent = make_agent(
        functions=[AgentFunction("fine", lambda args: "fine-result"), AgentFunction("boom", boom)],
    )
    swarm, _ = make_swarm([calls(("boom", {}), ("fine", {})), reply("ok")])
    response = swarm.run(agent, [Message.user("go")])

    results = function_messages(response.messages)
    assert [m.name for m in results] == ["boom", "fine"]
    assert "exploded" in results[0].content
    assert results[1].content == "fine-result"


def test_function_errors_propagate_when_configured(make_swarm, make_agent):
    def boom(args):
        raise RuntimeError("exploded")

    agent = make_agent(functions=[AgentFunction("boom", boom)])
    swarm, _ = make_swarm([call("boom"), reply("never")], propagate_function_errors=True)
    with pytest.raises(FunctionExecutionError) as excinfo:
        swarm.run(agent, [Message.user("go")])
    partial = excinfo.value.partial_response
    assert partial is not None
    assert partial.messages[-1].role == "function"


def test_fatal_transport_error_carries_partial_response(make_swarm, make_agent):
    agent = make_agent(functions=[AgentFunction("ping", lambda args: "pong")])
    failure = TransportError("unauthorized", kind="auth", status_code=401)
    swarm, _ = make_swarm([call("ping"), failure])
    with pytest.raises(TransportError) as excinfo:
        swarm.run(agent, [Message.user("go")])

    partial = excinfo.value.partial_response
    assert partial.turns == 2
    assert [m.role for m in partial.messages] == ["system", "user", "assistant", "function"]


def test_validation_fails_before_any_request(make_swarm):
    swarm, transport = make_swarm([reply("never")])
    with pytest.raises(ValidationError) as excinfo:
        swarm.run(Agent(name="", model="bad-model"), [Message.user("hi")])
    assert len(excinfo.value.violations) == 2
    assert transport.payloads == []


def test_caller_messages_are_not_mutated(make_swarm, make_agent):
    swarm, _ = make_swarm([reply("hi")])
    history = [Message.user("hello")]
    swarm.run(make_agent(), history)
    assert len(history) == 1
    assert history[0].content == "hello"


def test_mapping_messages_accepted(make_swarm, make_agent):
    swarm, _ = make_swarm([reply("hi")])
    response = swarm.run(make_agent(), [{"role": "user", "content": "hello"}])
    assert response.messages[1] == Message.user("hello")


# ============================================================================
# STEP PLANS
# ============================================================================


def test_run_once_steps_execute_in_number_order(make_swarm):
    instructions = _plan(
        (3, "run_once", "third", ""),
        (1, "run_once", "first", ""),
        (2, "run_once", "second", ""),
    )
    agent = Agent(name="Planner", instructions=instructions)
    swarm, transport = make_swarm([reply("a"), reply("b"), reply("c")])
    response = swarm.run(agent, [])

    assert response.turns == 3
    prompts = [m.content for m in response.messages if m.role == "user"]
    assert prompts == ["first", "second", "third"]
    assert transport.payloads[0]["messages"][0] == {"role": "system", "content": "You follow the plan."}


def test_loop_stops_when_function_sets_break_key(make_swarm):
    iterations = []

    def check(args):
        iterations.append(1)
        if len(iterations) == 2:
            return {"end_loop": "true"}
        return "keep going"

    instructions = _plan((1, "loop", "iterate", ""))
    agent = Agent(name="Looper", instructions=instructions, functions=[AgentFunction("check", check)])
    swarm, transport = make_swarm([call("check")] * 10, max_loop_iterations=5)
    response = swarm.run(agent, [])

    assert response.loop_iterations == {1: 2}
    assert response.loop_caps_reached == []
    assert response.turns == 2
    assert response.context_variables["end_loop"] == "true"
    assert transport.remaining == 8


def test_loop_stops_at_iteration_cap(make_swarm):
    instructions = _plan((1, "loop", "again", ""))
    agent = Agent(name="Looper", instructions=instructions)
    swarm, transport = make_swarm([reply("x")] * 5, max_loop_iterations=3)
    response = swarm.run(agent, [])

    assert response.loop_iterations == {1: 3}
    assert response.loop_caps_reached == [1]
    assert transport.remaining == 2


def test_step_agent_is_resolved_from_registry(make_swarm):
    writer = Agent(name="Writer", instructions="You write.")
    instructions = _plan((1, "run_once", "draft it", ' agent="Writer"'))
    planner = Agent(name="Planner", instructions=instructions)
    swarm, transport = make_swarm([reply("draft")], agents=[writer])
    response = swarm.run(planner, [])

    assert response.agent is writer
    assert response.messages[-1].name == "Writer"
    assert transport.payloads[0]["messages"] == [
        {"role": "system", "content": "You write."},
        {"role": "user", "content": "draft it"},
    ]


def test_step_agent_missing_from_registry(make_swarm):
    instructions = _plan((1, "run_once", "draft it", ' agent="Ghost"'))
    swarm, transport = make_swarm([reply("never")])
    with pytest.raises(AgentNotFoundError):
        swarm.run(Agent(name="Planner", instructions=instructions), [])
    assert transport.payloads == []


def test_step_prompt_placeholders_use_context(make_swarm):
    instructions = _plan((1, "run_once", "Research {topic}{absent}", ""))
    swarm, _ = make_swarm([reply("ok")])
    response = swarm.run(Agent(name="P", instructions=instructions), [], context_variables={"topic": "owls"})
    assert response.messages[1].content == "Research owls"


def test_malformed_plan_fails_before_any_request(make_swarm):
    agent = Agent(name="P", instructions='<steps><step number="1" action="fly"><prompt>x</prompt></step></steps>')
    swarm, transport = make_swarm([reply("never")])
    with pytest.raises(ParseError):
        swarm.run(agent, [])
    assert transport.payloads == []


def test_step_plan_runs_every_step_past_max_turns(make_swarm):
    instructions = _plan(*[(n, "run_once", f"step {n}", "") for n in range(1, 13)])
    swarm, transport = make_swarm([reply("ok")] * 12)
    response = swarm.run(Agent(name="P", instructions=instructions), [])

    assert swarm.config.max_turns == 10
    assert response.turns == 12
    assert [m.content for m in response.messages if m.role == "user"][-1] == "step 12"
    assert transport.remaining == 0


def test_loop_step_bounded_by_iteration_cap_not_max_turns(make_swarm):
    instructions = _plan((1, "run_once", "a", ""), (2, "loop", "b", ""))
    swarm, transport = make_swarm([reply("x")] * 6, max_loop_iterations=4)
    response = swarm.run(Agent(name="P", instructions=instructions), [], max_turns=2)

    assert response.turns == 5
    assert response.loop_iterations == {2: 4}
    assert response.loop_caps_reached == [2]
    assert transport.remaining == 1


def test_dynamic_instructions_rendered_each_turn(make_swarm):
    rendered = []

    def instructions(ctx):
        rendered.append(dict(ctx))
        return "dynamic"

    agent = Agent(name="D", instructions=Instructions.dynamic(instructions), functions=[lambda args: "x"])
    swarm, _ = make_swarm([call("<lambda>"), reply("done")])
    swarm.run(agent, [Message.user("go")])
    # once for plan detection, then once per turn
    assert len(rendered) == 3


# ============================================================================
# STREAMING
# ============================================================================


def test_streamed_run_assembles_reply(make_swarm, make_agent):
    fragments = [{"role": "assistant"}, {"content": "Hel"}, {"content": "lo", "finish_reason": "stop"}]
    swarm, transport = make_swarm([fragments])
    response = swarm.run(make_agent(), [Message.user("hi")], stream=True)

    assert response.messages[-1].content == "Hello"
    assert transport.payloads[0]["stream"] is True
    assert transport.closed_streams == 1


def test_streamed_function_call_is_dispatched(make_swarm, make_agent):
    agent = make_agent(functions=[AgentFunction("add", lambda args: str(int(args["a"]) + int(args["b"])))])
    fragments = [
        {"role": "assistant", "tool_calls": [{"index": 0, "id": "c0", "function": {"name": "add", "arguments": '{"a": 2,'}}]},
        {"tool_calls": [{"index": 0, "function": {"arguments": ' "b": 3}'}}], "finish_reason": "tool_calls"},
    ]
    swarm, _ = make_swarm([fragments, [{"role": "assistant", "content": "5"}]])
    response = swarm.run(agent, [Message.user("2+3?")], stream=True)

    assert function_messages(response.messages)[0].content == "5"
    assert response.messages[-1].content == "5"


def test_stream_interruption_is_a_transport_error(make_swarm, make_agent):
    broken = [{"role": "assistant"}, {"content": "par"}, TransportError("reset", kind="network", retriable=True)]
    swarm, transport = make_swarm([broken])
    with pytest.raises(TransportError) as excinfo:
        swarm.run(make_agent(), [Message.user("hi")], stream=True)
    assert excinfo.value.partial_response.turns == 1
    assert transport.closed_streams == 1


def test_stream_chat_yields_snapshots(make_swarm, make_agent):
    swarm, transport = make_swarm([[{"role": "assistant"}, {"content": "Hel"}, {"content": "lo"}]])
    history = [Message.user("hi")]
    snapshots = list(swarm.stream_chat(make_agent(), history))

    assert [s.content for s in snapshots] == [None, "Hel", "Hello"]
    assert history == [Message.user("hi")]
    assert transport.payloads[0]["messages"][0]["role"] == "system"


def test_stream_chat_validates_eagerly(make_swarm):
    swarm, _ = make_swarm([])
    with pytest.raises(ValidationError):
        swarm.stream_chat(Agent(name="A", model="bad-model"), [Message.user("hi")])


def test_run_and_stream_chat_send_instructions_first(make_swarm, make_agent):
    swarm, transport = make_swarm([reply("hi"), [{"role": "assistant"}, {"content": "hi"}]])
    history = [Message.user("hello")]
    swarm.run(make_agent(), history)
    list(swarm.stream_chat(make_agent(), history))

    expected = [
        {"role": "system", "content": "You are a helpful agent."},
        {"role": "user", "content": "hello"},
    ]
    assert transport.payloads[0]["messages"] == expected
    assert transport.payloads[1]["messages"] == expected


def test_id_less_parallel_calls_are_answered_by_tool_messages(make_swarm, make_agent):
    agent = make_agent(functions=[AgentFunction("one", lambda args: "1"), AgentFunction("two", lambda args: "2")])
    swarm, transport = make_swarm([calls(("one", {}), ("two", {}), ids=[None, None]), reply("done")])
    swarm.run(agent, [Message.user("go")])

    sent = transport.payloads[1]["messages"]
    assert [tc["id"] for tc in sent[2]["tool_calls"]] == ["call_0", "call_1"]
    assert sent[3:] == [
        {"role": "tool", "tool_call_id": "call_0", "content": "1"},
        {"role": "tool", "tool_call_id": "call_1", "content": "2"},
    ]
