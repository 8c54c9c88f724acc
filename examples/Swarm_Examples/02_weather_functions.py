import logging

from dotenv import load_dotenv
from agentswarm import Agent, AgentFunction, Message, Swarm

load_dotenv()
logging.basicConfig(level=logging.INFO)

FORECASTS = {"paris": "sunny, 24C", "oslo": "light rain, 11C", "tokyo": "humid, 29C"}


def get_weather(args):
    """Return today's weather for a city."""
    return FORECASTS.get(args.get("city", "").lower(), "no forecast available")


def get_unit(args):
    """Return the caller's preferred temperature unit."""
    return args.get("unit", "celsius")


weather_fn = AgentFunction(
    name = "get_weather",
    function = get_weather,
    parameters = {
        "type": "object",
        "properties": {"city": {"type": "string", "description": "City name"}},
        "required": ["city"],
    },
)
unit_fn = AgentFunction(name = "get_unit", function = get_unit, accepts_context_variables = True)

Weatherman = Agent(
    name = "Weatherman",
    model = "gpt-4o-mini",
    instructions = "You report the weather for {user_name}. Use your functions; never guess.",
    functions = [weather_fn, unit_fn],
    function_call = "auto",
)

swarm = Swarm()
response = swarm.run(
    Weatherman,
    [Message.user("What's the weather like in Paris and Oslo today?")],
    context_variables = {"user_name": "Ada", "unit": "celsius"},
    debug = True,
)

print("\n=== TRANSCRIPT ===")
for msg in response.messages:
    print(f"[{msg.role}] {msg.name or ''} {msg.content or msg.requested_calls()}")
print("\nturns:", response.turns)
