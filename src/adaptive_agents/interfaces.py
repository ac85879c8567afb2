"""Abstract base classes for the external collaborators."""

from abc import ABC, abstractmethod
from typing import Any

from .models import Capability, Message, PlanOutcome


class PlanningService(ABC):
    """Builds and executes a plan for a goal from a set of capabilities."""

    @abstractmethod
    def attempt(self, goal: str, capabilities: list[Capability]) -> PlanOutcome:
        """Return PlanSuccess with the executed output or PlanFailure with a diagnostic."""
        pass


class StructuredGenerationService(ABC):
    """Renders a prompt template and returns the model's text reply."""

    @abstractmethod
    def generate(self, prompt_template: str, variables: dict[str, str]) -> str:
        """Generate text (usually JSON-shaped) for the rendered template."""
        pass


class AgentHandle(ABC):
    """A live, releasable autonomous agent."""

    name: str

    @abstractmethod
    def invoke(self, input: Any) -> Any:
        """Run the agent on a single input."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Delete the agent and free any backing resources."""
        pass


class AgentFactory(ABC):
    """Creates agent handles."""

    @abstractmethod
    def create(
        self,
        name: str,
        description: str,
        instructions: str,
        capability_set: list[str],
    ) -> AgentHandle:
        """Instantiate an agent; the caller owns the returned handle."""
        pass


class ThreadHandle(ABC):
    """A shared conversation thread."""

    @abstractmethod
    def add_user_message(self, text: str) -> Message:
        """Post a user message to the thread."""
        pass

    @abstractmethod
    def invoke(self, agent: AgentHandle) -> list[Message]:
        """Let the agent read the thread and reply; returns the new messages."""
        pass


class ConversationTransport(ABC):
    """Opens conversation threads."""

    @abstractmethod
    def new_thread(self) -> ThreadHandle:
        """Create an empty thread."""
        pass
