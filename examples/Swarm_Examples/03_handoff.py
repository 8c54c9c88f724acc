import logging

from dotenv import load_dotenv
from agentswarm import Agent, AgentFunction, Message, Swarm

load_dotenv()
logging.basicConfig(level=logging.INFO)

Spanish_Agent = Agent(
    name = "Spanish Agent",
    model = "gpt-4o-mini",
    instructions = "You only speak Spanish.",
)

def transfer_to_spanish_agent(args):
    """Transfer Spanish-speaking users immediately."""
    return Spanish_Agent

English_Agent = Agent(
    name = "English Agent",
    model = "gpt-4o-mini",
    instructions = "You only speak English. Hand Spanish speakers over to the Spanish agent.",
    functions = [AgentFunction("transfer_to_spanish_agent", transfer_to_spanish_agent)],
)

swarm = Swarm(agents = [Spanish_Agent])
response = swarm.run(English_Agent, [Message.user("Hola. ¿Cómo estás?")])

print("final agent:", response.agent.name)
print(response.content)
