import logging

from dotenv import load_dotenv
from agentswarm import Agent, Message, Swarm

load_dotenv()
logging.basicConfig(level=logging.WARNING)

# --- define our swarm (reads OPENAI_API_KEY from the environment) ---
swarm = Swarm()

# --- define our agent ---
Agent_Atom = Agent(
    name = "Agent Atom",
    model = "gpt-4o-mini",
    instructions = """
    You are a helpful and enthusiastic assistant named Agent Atom.
    You always end your responses with excitement and emojis.""")

# --- begin a conversation with the agent ---
print(f"Chat with {Agent_Atom.name}! To exit the conversation, type 'q' or 'exit'!")
history = []
query = input("YOU: ")
while query.strip().lower() not in ['q', 'exit']:
    history.append(Message.user(query))
    response = swarm.run(Agent_Atom, history)
    history = response.messages
    print(f"{Agent_Atom.name.upper()}: {response.content}")
    query = input("YOU: ")
