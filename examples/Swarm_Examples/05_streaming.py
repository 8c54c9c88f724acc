import sys

from dotenv import load_dotenv
from agentswarm import Agent, Message, Swarm

load_dotenv()

Storyteller = Agent(
    name = "Storyteller",
    model = "gpt-4o-mini",
    instructions = "You tell very short bedtime stories.",
)

swarm = Swarm()
printed = 0
for snapshot in swarm.stream_chat(Storyteller, [Message.user("A story about a sleepy robot.")]):
    text = snapshot.content or ""
    sys.stdout.write(text[printed:])
    sys.stdout.flush()
    printed = len(text)
print()
