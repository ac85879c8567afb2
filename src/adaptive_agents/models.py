"""Shared data models for planning and conversation sessions."""

import re
import uuid
from enum import Enum
from typing import Any, Callable, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

CAPABILITY_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")


def _validate_capability_name(value: str) -> str:
    if not CAPABILITY_NAME_PATTERN.match(value):
        raise ValueError(
            "Capability name must start with a letter or underscore and contain "
            "only letters, digits, underscores, dots or dashes"
        )
    return value


def _normalize_schema(value: Any) -> dict[str, Any]:
    """Coerce the planner's helper input/output shapes into a JSON-schema dict."""
    if value is None:
        return {}
    if isinstance(value, list):
        properties: dict[str, Any] = {}
        for entry in value:
            if not isinstance(entry, dict):
                raise ValueError("Schema list entries must be objects")
            props = entry.get("properties", entry.get("Properties", entry))
            if not isinstance(props, dict):
                raise ValueError("Schema properties must be an object")
            properties.update(props)
        return {"type": "object", "properties": properties}
    if isinstance(value, dict):
        if "properties" in value or "type" in value:
            return dict(value)
        if "Properties" in value:
            return {"type": "object", "properties": dict(value["Properties"])}
        return {"type": "object", "properties": dict(value)}
    raise ValueError("Schema must be an object or a list of objects")


class Capability(BaseModel):
    """A named, schema-described unit of executable behavior."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique capability name within a registry")
    description: str = Field(..., description="What the capability does")
    input_schema: dict[str, Any] = Field(default_factory=dict, description="JSON-style input schema")
    output_schema: dict[str, Any] = Field(default_factory=dict, description="JSON-style output schema")
    executor: Optional[Callable[..., Any]] = Field(
        default=None, exclude=True, description="Execution backend"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate capability name format."""
        return _validate_capability_name(v)


class CapabilityGapRequest(BaseModel):
    """A capability the planner needed but does not have.

    Accepts both snake_case keys and the planner's helper shape
    (``Name``, ``Description``, ``Inputs``, ``Outputs``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, validation_alias=AliasChoices("name", "Name"))
    description: str = Field(
        default="", validation_alias=AliasChoices("description", "Description")
    )
    input_schema: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("input_schema", "inputSchema", "inputs", "Inputs"),
    )
    output_schema: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("output_schema", "outputSchema", "outputs", "Outputs"),
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate gap name format."""
        return _validate_capability_name(v.strip())

    @field_validator("input_schema", "output_schema", mode="before")
    @classmethod
    def normalize_schema(cls, v: Any) -> dict[str, Any]:
        """Normalize helper-style schemas."""
        return _normalize_schema(v)


class PlanSuccess(BaseModel):
    """The planner built and executed a plan."""

    output: Any = None


class PlanFailure(BaseModel):
    """The planner could not build or execute a plan."""

    diagnostic: str


PlanOutcome = Union[PlanSuccess, PlanFailure]


class PlanAttempt(BaseModel):
    """One plan-and-execute attempt inside a goal planning loop."""

    iteration: int
    goal: str
    registry_snapshot: list[str] = Field(default_factory=list)
    outcome: PlanOutcome

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, PlanSuccess)


class DiagnosticKind(str, Enum):
    """Classification of a planner failure diagnostic."""
    RECOVERABLE_GAP = "recoverable_gap"
    HALLUCINATED_CAPABILITY = "hallucinated_capability"
    MALFORMED_DIAGNOSTIC = "malformed_diagnostic"


class DiagnosticAnalysis(BaseModel):
    """What GapExtractor made of a diagnostic."""

    model_config = ConfigDict(frozen=True)

    kind: DiagnosticKind
    gaps: Optional[list[CapabilityGapRequest]] = None

    @property
    def is_recoverable(self) -> bool:
        return self.kind == DiagnosticKind.RECOVERABLE_GAP and bool(self.gaps)


class FailureKind(str, Enum):
    """Why a goal planning loop gave up."""
    HALLUCINATED_CAPABILITY = "hallucinated_capability"
    MALFORMED_DIAGNOSTIC = "malformed_diagnostic"
    ITERATION_LIMIT = "iteration_limit"
    GAP_NOT_SHRINKING = "gap_not_shrinking"
    RETRY_DECLINED = "retry_declined"


class LoopResult(BaseModel):
    """Outcome of one goal planning loop run."""

    succeeded: bool
    output: Any = None
    reason: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    attempts: int = 0
    synthesized: list[str] = Field(default_factory=list)

    @classmethod
    def success(cls, output: Any, attempts: int, synthesized: list[str]) -> "LoopResult":
        return cls(succeeded=True, output=output, attempts=attempts, synthesized=list(synthesized))

    @classmethod
    def failure(
        cls,
        kind: FailureKind,
        reason: str,
        attempts: int,
        synthesized: list[str],
    ) -> "LoopResult":
        return cls(
            succeeded=False,
            reason=reason,
            failure_kind=kind,
            attempts=attempts,
            synthesized=list(synthesized),
        )


class RoleSpec(BaseModel):
    """One team member profile produced by team composition."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    instructions: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class Agent(BaseModel):
    """An instantiated participant backed by an agent handle."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str = ""
    instructions: str = ""
    capability_set: list[str] = Field(default_factory=list)
    handle: Any = Field(default=None, exclude=True)


class MessageRole(str, Enum):
    """Who produced a conversation message."""
    COORDINATOR = "coordinator"
    MEMBER = "member"
    USER = "user"


class Message(BaseModel):
    """A single message in the conversation log."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sender_name: str = ""
    role: MessageRole = MessageRole.MEMBER
    content: str = ""
    sequence_number: int = 0


class ConversationPhase(str, Enum):
    """Scheduler phases."""
    FIRST_PASS = "first_pass"
    DIRECTED = "directed"
    TERMINAL = "terminal"


class UnroutablePolicy(str, Enum):
    """What the scheduler does when the coordinator names no resolvable speaker."""
    REPROMPT = "reprompt"
    RAISE = "raise"


class ConversationState(BaseModel):
    """State owned by one ConversationScheduler session."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    participants: list[Agent] = Field(default_factory=list)
    coordinator: Agent
    log: list[Message] = Field(default_factory=list)
    phase: ConversationPhase = ConversationPhase.FIRST_PASS
    terminal: bool = False
    first_pass_index: int = 0
    turns_taken: int = 0
    unrouted_turns: int = 0
    final_answer: Optional[str] = None

    @property
    def members(self) -> list[Agent]:
        """Participants other than the coordinator."""
        return [agent for agent in self.participants if agent.name != self.coordinator.name]

    def append_message(self, message: Message, sender: Optional[Agent], role: MessageRole) -> Message:
        """Stamp a message with sender and the next sequence number and append it."""
        stamped = message.model_copy(
            update={
                "sender_name": sender.name if sender else (message.sender_name or "user"),
                "role": role,
                "sequence_number": len(self.log) + 1,
            }
        )
        self.log.append(stamped)
        return stamped

    def mark_terminal(self, final_answer: Optional[str] = None) -> None:
        """Move to the terminal phase."""
        self.phase = ConversationPhase.TERMINAL
        self.terminal = True
        if final_answer is not None:
            self.final_answer = final_answer
