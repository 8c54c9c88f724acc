"""
Step plans
----------
The starting agent's instructions embed a <steps> block. Step 1 runs once with
the Researcher; step 2 loops with the Editor until a function sets end_loop.
"""
import logging

from dotenv import load_dotenv
from agentswarm import Agent, AgentFunction, SwarmBuilder

load_dotenv()
logging.basicConfig(level=logging.INFO)


def approve_draft(args):
    """Call this when the draft is good enough to publish."""
    return {**args, "end_loop": "true", "status": "approved"}


Researcher = Agent(
    name = "Researcher",
    model = "gpt-4o-mini",
    instructions = "You collect three short facts about {topic}.",
)

Editor = Agent(
    name = "Editor",
    model = "gpt-4o-mini",
    instructions = "You tighten the draft about {topic}. Approve it once it reads well.",
    functions = [AgentFunction("approve_draft", approve_draft, accepts_context_variables = True)],
)

Planner = Agent(
    name = "Planner",
    model = "gpt-4o-mini",
    instructions = """
    You coordinate a small writing team.
    <steps>
      <step number="1" action="run_once" agent="Researcher">
        <prompt>Gather facts about {topic}.</prompt>
      </step>
      <step number="2" action="loop" agent="Editor">
        <prompt>Improve the draft, then approve it if it is ready.</prompt>
      </step>
    </steps>
    """,
)

swarm = (
    SwarmBuilder.from_env()
    .with_agents([Researcher, Editor])
    .with_max_loop_iterations(4)
    .build()
)
response = swarm.run(Planner, [], context_variables = {"topic": "octopuses"})

print("loop iterations:", response.loop_iterations)
print("context:", response.context_variables)
print(response.content)
