"""Exception hierarchy for planning and conversation sessions."""

from typing import Any, Optional


class AdaptiveAgentsError(Exception):
    """Base class for all errors raised by this package."""


class DuplicateCapabilityError(AdaptiveAgentsError, ValueError):
    """A capability with the same name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Capability '{name}' is already registered")
        self.name = name


class SynthesisFailure(AdaptiveAgentsError):
    """Instantiating the sub-agent behind a synthesized capability failed."""

    def __init__(self, capability_name: str, message: str):
        super().__init__(f"Could not synthesize capability '{capability_name}': {message}")
        self.capability_name = capability_name


class CompositionFailure(AdaptiveAgentsError):
    """The team composition reply failed validation; no team was built."""

    def __init__(self, message: str, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response


class ConversationError(AdaptiveAgentsError):
    """Base class for scheduler errors; carries the conversation state."""

    def __init__(self, message: str, state: Any = None):
        super().__init__(message)
        self.state = state


class UnroutableSpeakerError(ConversationError):
    """The coordinator did not name a speaker that resolves to one participant."""


class TurnLimitExceeded(ConversationError):
    """The conversation used up its turn budget without reaching completion."""


class BackendTimeoutError(AdaptiveAgentsError, TimeoutError):
    """A blocking call to an external collaborator did not return in time."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout}s")
        self.operation = operation
        self.timeout = timeout


class SessionCancelled(AdaptiveAgentsError):
    """The session's cancellation token was set."""


class ResourceReleaseError(AdaptiveAgentsError):
    """One or more agent handles could not be released."""

    def __init__(self, failures: list[tuple[str, BaseException]], result: Any = None):
        names = ", ".join(name for name, _ in failures)
        super().__init__(f"Failed to release {len(failures)} agent(s): {names}")
        self.failures = failures
        self.result = result
