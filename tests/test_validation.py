import pytest

from agentswarm.agents.base import Agent
from agentswarm.core.Config import SwarmConfig
from agentswarm.core.Exceptions import ConfigError, ValidationError
from agentswarm.core.Messages import FunctionCall, Message
from agentswarm.swarm.validation import (
    collect_request_violations,
    validate_api_key,
    validate_config,
    validate_request,
    validate_url,
)

CONFIG = SwarmConfig()
HELLO = [Message.user("hello")]


def test_empty_name_and_bad_model_reported_together():
    agent = Agent(name="", model="bad-model")
    with pytest.raises(ValidationError) as excinfo:
        validate_request(agent, HELLO, config=CONFIG)
    assert excinfo.value.fields == ["agent.name", "agent.model"]
    assert "bad-model" in str(excinfo.value)


def test_valid_request_has_no_violations():
    assert collect_request_violations(Agent(name="A"), HELLO, config=CONFIG) == []


def test_model_override_checked():
    violations = collect_request_violations(Agent(name="A"), HELLO, config=CONFIG, model_override="claude-x")
    assert [v.field for v in violations] == ["model_override"]


def test_messages_required_unless_step_plan():
    agent = Agent(name="A")
    assert [v.field for v in collect_request_violations(agent, [], config=CONFIG)] == ["messages"]
    assert collect_request_violations(agent, [], config=CONFIG, has_step_plan=True) == []


def test_message_role_and_content_rules():
    messages = [
        Message(role="", content="x"),
        Message.user("   "),
        Message(role="assistant", content=None, function_call=FunctionCall("f", "{}")),
        Message.function_result("f", ""),
        Message(role="robot", content="beep"),
    ]
    fields = [v.field for v in collect_request_violations(Agent(name="A"), messages, config=CONFIG)]
    assert fields == ["messages[0].role", "messages[1].content", "messages[4].role"]


def test_max_turns_bounds():
    agent = Agent(name="A")
    too_many = collect_request_violations(agent, HELLO, config=CONFIG, max_turns=CONFIG.max_turns + 1)
    assert [v.field for v in too_many] == ["max_turns"]
    zero = collect_request_violations(agent, HELLO, config=CONFIG, max_turns=0)
    assert [v.field for v in zero] == ["max_turns"]


def test_blank_static_instructions_rejected_but_dynamic_allowed():
    blank = collect_request_violations(Agent(name="A", instructions="  "), HELLO, config=CONFIG)
    assert [v.field for v in blank] == ["agent.instructions"]
    dynamic = Agent(name="A", instructions=lambda ctx: "")
    assert collect_request_violations(dynamic, HELLO, config=CONFIG) == []


def test_forced_function_must_exist():
    agent = Agent(name="A", functions=[lambda args: "x"], function_call="missing")
    fields = [v.field for v in collect_request_violations(agent, HELLO, config=CONFIG)]
    assert fields == ["agent.function_call"]


@pytest.mark.parametrize(
    "url",
    [
        "https://api.openai.com/v1",
        "https://api.azure.com/openai/deployments/x",
        "http://localhost:8080/v1",
        "http://127.0.0.1/v1",
        "https://localhost:9999",
    ],
)
def test_valid_urls(url):
    assert validate_url(url, CONFIG.valid_api_url_prefixes) == url


@pytest.mark.parametrize(
    "url",
    [
        "",
        "not a url",
        "http://api.openai.com/v1",
        "https://example.com/v1",
        "ftp://localhost/v1",
    ],
)
def test_invalid_urls(url):
    with pytest.raises(ValidationError):
        validate_url(url, CONFIG.valid_api_url_prefixes)


def test_insecure_and_unlisted_url_reports_both():
    with pytest.raises(ValidationError) as excinfo:
        validate_url("http://example.com", CONFIG.valid_api_url_prefixes)
    assert len(excinfo.value.violations) == 2


def test_api_key_rules():
    assert validate_api_key("sk-abc") == "sk-abc"
    with pytest.raises(ValidationError):
        validate_api_key("")
    with pytest.raises(ValidationError):
        validate_api_key("pk-abc")
    assert validate_api_key("anything", prefix=None) == "anything"


@pytest.mark.parametrize(
    "changes, field",
    [
        ({"request_timeout": 0}, "request_timeout"),
        ({"request_timeout": 7200}, "request_timeout"),
        ({"connect_timeout": -1}, "connect_timeout"),
        ({"max_retries": 0}, "max_retries"),
        ({"max_turns": 0}, "max_turns"),
        ({"max_loop_iterations": 0}, "max_loop_iterations"),
        ({"valid_model_prefixes": ()}, "valid_model_prefixes"),
    ],
)
def test_validate_config(changes, field):
    with pytest.raises(ConfigError) as excinfo:
        validate_config(CONFIG.evolve(**changes))
    assert excinfo.value.field == field
