"""Deterministic in-process collaborators for demos, simulation and tests."""

import itertools
import json
from collections import defaultdict, deque
from typing import Any, Callable, Iterable, Optional, Union

from .interfaces import (
    AgentFactory,
    AgentHandle,
    ConversationTransport,
    PlanningService,
    StructuredGenerationService,
    ThreadHandle,
)
from .models import Capability, Message, MessageRole, PlanFailure, PlanOutcome, PlanSuccess


def format_gap_diagnostic(helpers: Iterable[dict[str, Any]], preamble: Optional[str] = None) -> str:
    """Render a planner-style diagnostic that embeds a helper list."""
    text = preamble or (
        "Unable to create plan for goal with available functions. "
        "InsufficientFunctionsForGoal: additional helpers may be required:"
    )
    return f"{text}\n{json.dumps(list(helpers), indent=2)}\nPlease add these helpers and retry."


def helper(name: str, description: str = "", **inputs: str) -> dict[str, Any]:
    """Build one helper entry in the planner's own shape."""
    return {
        "Name": name,
        "Description": description or f"Provides {name}",
        "Inputs": [
            {"Properties": {key: {"type": value, "description": key} for key, value in inputs.items()}}
        ],
        "Outputs": {"type": "string", "description": f"{name} result"},
    }


OutcomeStep = Union[PlanOutcome, Callable[[str, list[Capability]], PlanOutcome]]


class ScriptedPlanningService(PlanningService):
    """Returns a fixed sequence of outcomes; the last one repeats."""

    def __init__(self, outcomes: list[OutcomeStep]):
        if not outcomes:
            raise ValueError("ScriptedPlanningService needs at least one outcome")
        self.outcomes = list(outcomes)
        self.calls: list[list[str]] = []

    def attempt(self, goal: str, capabilities: list[Capability]) -> PlanOutcome:
        """Return the next scripted outcome."""
        index = min(len(self.calls), len(self.outcomes) - 1)
        self.calls.append(sorted(capability.name for capability in capabilities))
        step = self.outcomes[index]
        if callable(step):
            return step(goal, capabilities)
        return step


class RequirementPlanner(PlanningService):
    """Succeeds once every required helper exists, otherwise reports the missing ones.

    Requirements are revealed in rounds, the way a planner discovers new
    gaps only after earlier ones are filled.
    """

    def __init__(self, rounds: list[list[dict[str, Any]]], output: Any = "plan executed"):
        self.rounds = rounds
        self.output = output
        self.calls = 0

    def attempt(self, goal: str, capabilities: list[Capability]) -> PlanOutcome:
        self.calls += 1
        available = {capability.name for capability in capabilities}
        for helpers in self.rounds:
            missing = [entry for entry in helpers if entry["Name"] not in available]
            if missing:
                return PlanFailure(diagnostic=format_gap_diagnostic(missing))
        return PlanSuccess(output=self.output)


class EndlessGapPlanner(PlanningService):
    """Reports a brand-new missing helper on every attempt."""

    def __init__(self, prefix: str = "Helper"):
        self.prefix = prefix
        self.calls = 0

    def attempt(self, goal: str, capabilities: list[Capability]) -> PlanOutcome:
        self.calls += 1
        return PlanFailure(diagnostic=format_gap_diagnostic([helper(f"{self.prefix}{self.calls}")]))


class StubAgentHandle(AgentHandle):
    """Agent handle that echoes its input and records releases."""

    def __init__(self, name: str, instructions: str = "", response: Optional[str] = None):
        self.name = name
        self.instructions = instructions
        self.response = response
        self.invocations: list[Any] = []
        self.release_count = 0

    @property
    def released(self) -> bool:
        return self.release_count > 0

    def invoke(self, input: Any) -> Any:
        """Return the canned response or an echo of the input."""
        if self.released:
            raise RuntimeError(f"Agent {self.name} was already released")
        self.invocations.append(input)
        if self.response is not None:
            return self.response
        return f"{self.name} handled {input}"

    def release(self) -> None:
        self.release_count += 1


class StubAgentFactory(AgentFactory):
    """Creates StubAgentHandles; names in ``failing_names`` raise instead."""

    def __init__(
        self,
        failing_names: Optional[set[str]] = None,
        responses: Optional[dict[str, str]] = None,
    ):
        self.failing_names = failing_names or set()
        self.responses = responses or {}
        self.created: list[StubAgentHandle] = []
        self.requests: list[dict[str, Any]] = []

    def create(
        self,
        name: str,
        description: str,
        instructions: str,
        capability_set: list[str],
    ) -> AgentHandle:
        """Create a stub agent or fail for configured names."""
        self.requests.append(
            {
                "name": name,
                "description": description,
                "instructions": instructions,
                "capability_set": list(capability_set),
            }
        )
        if name in self.failing_names:
            raise RuntimeError(f"Agent backend unavailable for {name}")
        handle = StubAgentHandle(name, instructions, self.responses.get(name))
        self.created.append(handle)
        return handle


class StaticGenerationService(StructuredGenerationService):
    """Returns one fixed reply and records every request."""

    def __init__(self, response: str):
        self.response = response
        self.calls: list[tuple[str, dict[str, str]]] = []

    def generate(self, prompt_template: str, variables: dict[str, str]) -> str:
        self.calls.append((prompt_template, dict(variables)))
        return self.response


class ScriptedThread(ThreadHandle):
    """Thread whose agents reply from per-name scripts."""

    def __init__(self, scripts: dict[str, list[str]], ids: Iterable[int]):
        self._scripts = defaultdict(deque, {name: deque(lines) for name, lines in scripts.items()})
        self._ids = iter(ids)
        self.messages: list[Message] = []
        self.invoked: list[str] = []

    def add_user_message(self, text: str) -> Message:
        message = Message(id=f"msg-{next(self._ids)}", sender_name="user", role=MessageRole.USER, content=text)
        self.messages.append(message)
        return message

    def invoke(self, agent: AgentHandle) -> list[Message]:
        """Reply with the agent's next scripted line."""
        self.invoked.append(agent.name)
        script = self._script_for(agent.name)
        content = script.popleft() if script else f"{agent.name} has nothing to add."
        message = Message(id=f"msg-{next(self._ids)}", sender_name=agent.name, content=content)
        self.messages.append(message)
        return [message]

    def _script_for(self, name: str) -> deque:
        if name in self._scripts:
            return self._scripts[name]
        for key, script in self._scripts.items():
            if name.startswith(key):
                return script
        return self._scripts[name]


class ScriptedTransport(ConversationTransport):
    """Opens ScriptedThreads sharing one set of scripts.

    Script keys are agent names or name prefixes, e.g. ``"Ann"`` for
    ``"Ann - Analyst"``.
    """

    def __init__(self, scripts: Optional[dict[str, list[str]]] = None):
        self.scripts = scripts or {}
        self.threads: list[ScriptedThread] = []
        self._ids = itertools.count(1)

    def new_thread(self) -> ThreadHandle:
        thread = ScriptedThread(self.scripts, self._ids)
        self.threads.append(thread)
        return thread
