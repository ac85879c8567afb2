"""Adaptive Agents - self-extending planning and coordinated agent teams"""

from .capability_registry import CapabilityRegistry
from .collaboration import run_collaboration
from .conversation import ConversationMarkers, ConversationScheduler
from .errors import (
    AdaptiveAgentsError,
    BackendTimeoutError,
    CompositionFailure,
    DuplicateCapabilityError,
    ResourceReleaseError,
    SessionCancelled,
    SynthesisFailure,
    TurnLimitExceeded,
    UnroutableSpeakerError,
)
from .gap_extractor import GapExtractor, extract_gaps
from .guarded_call import CancellationToken, call_with_timeout
from .interfaces import (
    AgentFactory,
    AgentHandle,
    ConversationTransport,
    PlanningService,
    StructuredGenerationService,
    ThreadHandle,
)
from .models import (
    Agent,
    Capability,
    CapabilityGapRequest,
    ConversationPhase,
    ConversationState,
    FailureKind,
    LoopResult,
    Message,
    MessageRole,
    PlanFailure,
    PlanSuccess,
    RoleSpec,
    UnroutablePolicy,
)
from .planning_loop import GoalPlanningLoop
from .resources import ResourceScope
from .settings import AdaptiveAgentsSettings, get_settings
from .strategy import StrategyProfile
from .synthesizer import CapabilitySynthesizer
from .team_composer import TeamComposer
from .agent_prompts import AgentPrompt, DEFAULT_AGENT_PROMPTS, list_default_prompts, resolve_prompt

__all__ = [
    "CapabilityRegistry",
    "GapExtractor",
    "extract_gaps",
    "CapabilitySynthesizer",
    "GoalPlanningLoop",
    "TeamComposer",
    "ConversationScheduler",
    "ConversationMarkers",
    "run_collaboration",
    "ResourceScope",
    "CancellationToken",
    "call_with_timeout",
    "AdaptiveAgentsSettings",
    "get_settings",
    "StrategyProfile",
    "PlanningService",
    "StructuredGenerationService",
    "AgentFactory",
    "AgentHandle",
    "ConversationTransport",
    "ThreadHandle",
    "Agent",
    "Capability",
    "CapabilityGapRequest",
    "ConversationPhase",
    "ConversationState",
    "FailureKind",
    "LoopResult",
    "Message",
    "MessageRole",
    "PlanFailure",
    "PlanSuccess",
    "RoleSpec",
    "UnroutablePolicy",
    "AdaptiveAgentsError",
    "BackendTimeoutError",
    "CompositionFailure",
    "DuplicateCapabilityError",
    "ResourceReleaseError",
    "SessionCancelled",
    "SynthesisFailure",
    "TurnLimitExceeded",
    "UnroutableSpeakerError",
    "AgentPrompt",
    "DEFAULT_AGENT_PROMPTS",
    "list_default_prompts",
    "resolve_prompt",
]
