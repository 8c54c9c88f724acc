import pytest

from agentswarm.agents.base import Agent
from agentswarm.core.Config import LoopControl, RetryStrategy, SwarmConfig
from agentswarm.swarm.core import Swarm
from tests.fixtures.transports import ScriptedTransport


@pytest.fixture
def config() -> SwarmConfig:
    """Default config without sleeps between retries or loop iterations."""
    return SwarmConfig(
        retry_strategy=RetryStrategy(initial_delay=0.0, max_delay=0.0),
        loop_control=LoopControl(iteration_delay=0.0),
    )


@pytest.fixture
def make_swarm(config):
    def factory(replies, *, agents=(), **config_changes):
        transport = ScriptedTransport(replies)
        swarm = Swarm(transport, config=config.evolve(**config_changes), agents=agents)
        return swarm, transport

    return factory


@pytest.fixture
def make_agent():
    def factory(name="Assistant", **kwargs):
        kwargs.setdefault("model", "gpt-4o")
        kwargs.setdefault("instructions", "You are a helpful agent.")
        return Agent(name=name, **kwargs)

    return factory
