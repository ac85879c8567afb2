"""End-to-end team collaboration session."""

import logging
from typing import Optional

from .conversation import ConversationMarkers, ConversationScheduler, DEFAULT_MARKERS
from .guarded_call import CancellationToken
from .interfaces import ConversationTransport
from .models import ConversationState
from .resources import ResourceScope
from .settings import AdaptiveAgentsSettings, get_settings
from .team_composer import TeamComposer

logger = logging.getLogger(__name__)


def run_collaboration(
    assignment: str,
    composer: TeamComposer,
    transport: ConversationTransport,
    settings: Optional[AdaptiveAgentsSettings] = None,
    markers: ConversationMarkers = DEFAULT_MARKERS,
    cancel_token: Optional[CancellationToken] = None,
) -> ConversationState:
    """Compose a team, let the coordinator drive it to a final answer.

    Every agent created for the session is released before returning,
    including when composition, a turn or routing fails.
    """
    settings = settings or get_settings()
    limits = settings.limits()

    with ResourceScope("collaboration") as resources:
        members = composer.build_team(assignment, resources)
        coordinator = composer.create_coordinator(
            members,
            assignment,
            resources,
            next_speaker_marker=markers.next_speaker,
            completion_marker=markers.completion,
        )
        scheduler = ConversationScheduler(
            transport,
            coordinator,
            members,
            markers=markers,
            unroutable_policy=settings.unroutable_policy,
            max_turns=limits["max_turns"],
            max_unrouted_turns=limits["max_unrouted_turns"],
            max_delegation_rounds=limits["max_delegation_rounds"],
            timeout=settings.call_timeout_seconds,
            cancel_token=cancel_token,
        )
        state = scheduler.run(assignment)
        resources.result = state
        logger.info(
            "Collaboration finished with %d message(s) in %d turn(s)",
            len(state.log),
            state.turns_taken,
        )
        return state
