"""Conversation scheduler - turn routing for a coordinated agent team.

Phases run ``first_pass -> directed -> terminal``:

* first_pass: every participant, coordinator first, speaks once in order.
  A coordinator reply carrying the delegation marker means it is still
  busy with its own functions, so it is invoked again in place.
* directed: the coordinator speaks, names the next speaker with
  ``NEXT SPEAKER: <name>``, that member replies, control returns to the
  coordinator. ``FINAL ANSWER`` ends the conversation and wins over any
  routing token in the same reply.
* terminal: nothing more happens; the log is the result.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .agent_prompts import AgentPrompt, resolve_prompt
from .errors import TurnLimitExceeded, UnroutableSpeakerError
from .guarded_call import CancellationToken, call_with_timeout
from .interfaces import ConversationTransport, ThreadHandle
from .models import (
    Agent,
    ConversationPhase,
    ConversationState,
    Message,
    MessageRole,
    UnroutablePolicy,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationMarkers:
    """Fixed tokens the coordinator uses to route and finish."""

    next_speaker: str = "NEXT SPEAKER:"
    completion: str = "FINAL ANSWER"
    delegation: str = "NEXT SPEAKER: functions."

    @property
    def next_speaker_pattern(self) -> re.Pattern:
        return re.compile(re.escape(self.next_speaker) + r"\s*(\w+)", re.MULTILINE)


DEFAULT_MARKERS = ConversationMarkers()


def has_completion(text: str, markers: ConversationMarkers = DEFAULT_MARKERS) -> bool:
    """Case-insensitive check for the completion marker."""
    return markers.completion.lower() in text.lower()


def extract_final_answer(text: str, markers: ConversationMarkers = DEFAULT_MARKERS) -> str:
    """Text following the completion marker."""
    index = text.lower().find(markers.completion.lower())
    if index < 0:
        return ""
    return text[index + len(markers.completion):].lstrip(" :\t\r\n").rstrip()


def is_delegating(text: str, markers: ConversationMarkers = DEFAULT_MARKERS) -> bool:
    return markers.delegation in text


def parse_next_speaker(text: str, markers: ConversationMarkers = DEFAULT_MARKERS) -> Optional[str]:
    """Return the first name token after the next-speaker marker, if any."""
    match = markers.next_speaker_pattern.search(text)
    return match.group(1) if match else None


def resolve_speaker(token: str, members: list[Agent]) -> Optional[Agent]:
    """Prefix-match a token against member names; None when absent or ambiguous."""
    candidates = [member for member in members if member.name.startswith(token)]
    if not candidates:
        lowered = token.lower()
        candidates = [member for member in members if member.name.lower().startswith(lowered)]
    if len(candidates) == 1:
        return candidates[0]
    exact = [member for member in candidates if member.name.split(" - ")[0] == token]
    if len(exact) == 1:
        return exact[0]
    return None


class ConversationScheduler:
    """Drives one conversation session over a shared thread."""

    def __init__(
        self,
        transport: ConversationTransport,
        coordinator: Agent,
        members: list[Agent],
        markers: ConversationMarkers = DEFAULT_MARKERS,
        unroutable_policy: UnroutablePolicy = UnroutablePolicy.REPROMPT,
        max_turns: int = 40,
        max_unrouted_turns: int = 2,
        max_delegation_rounds: int = 5,
        nudge_prompt: Optional[AgentPrompt | str] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        names = [coordinator.name] + [member.name for member in members]
        if len(set(names)) != len(names):
            raise ValueError("Participant names must be unique within a team")
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")

        self.transport = transport
        self.markers = markers
        self.unroutable_policy = unroutable_policy
        self.max_turns = max_turns
        self.max_unrouted_turns = max_unrouted_turns
        self.max_delegation_rounds = max_delegation_rounds
        self.nudge_prompt = resolve_prompt("unroutable_nudge", nudge_prompt)
        self.timeout = timeout
        self.cancel_token = cancel_token
        self._thread: Optional[ThreadHandle] = None
        self.state = ConversationState(
            participants=[coordinator, *members],
            coordinator=coordinator,
        )

    @property
    def started(self) -> bool:
        return self._thread is not None

    def start(self, assignment: str) -> Message:
        """Open the thread and post the assignment as the user message."""
        if self._thread is not None:
            raise RuntimeError("Conversation already started")
        self._thread = self._guarded(self.transport.new_thread, operation="open thread")
        return self._post_user_message(assignment)

    def run(self, assignment: Optional[str] = None) -> ConversationState:
        """Advance until terminal; starts the thread first when given an assignment."""
        if assignment is not None and not self.started:
            self.start(assignment)
        while not self.state.terminal:
            self.advance()
        return self.state

    def advance(self) -> list[Message]:
        """Take one turn and return the messages it appended."""
        if self.state.terminal:
            return []
        if self._thread is None:
            raise RuntimeError("Call start() before advancing the conversation")
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()

        if self.state.phase == ConversationPhase.FIRST_PASS:
            return self._first_pass_turn()
        return self._directed_turn()

    def _first_pass_turn(self) -> list[Message]:
        state = self.state
        speaker = state.participants[state.first_pass_index]
        appended = self._invoke(speaker)

        if speaker.name == state.coordinator.name:
            latest = appended
            rounds = 0
            while is_delegating(self._text(latest), self.markers):
                rounds += 1
                if rounds > self.max_delegation_rounds:
                    raise TurnLimitExceeded(
                        f"Coordinator kept delegating for {self.max_delegation_rounds} rounds",
                        state,
                    )
                latest = self._invoke(speaker)
                appended.extend(latest)

        state.first_pass_index += 1
        if state.first_pass_index >= len(state.participants):
            state.phase = ConversationPhase.DIRECTED
            logger.info("First pass complete; coordinator now directs turns")
        return appended

    def _directed_turn(self) -> list[Message]:
        state = self.state
        appended = self._invoke(state.coordinator)
        text = self._text(appended)

        if has_completion(text, self.markers):
            state.mark_terminal(extract_final_answer(text, self.markers))
            logger.info("Coordinator declared completion after %d turn(s)", state.turns_taken)
            return appended

        if is_delegating(text, self.markers):
            return appended

        token = parse_next_speaker(text, self.markers)
        target = resolve_speaker(token, state.members) if token else None
        if target is None:
            return appended + self._handle_unroutable(token)

        state.unrouted_turns = 0
        logger.info("Coordinator routed the turn to %s", target.name)
        return appended + self._invoke(target)

    def _handle_unroutable(self, token: Optional[str]) -> list[Message]:
        state = self.state
        state.unrouted_turns += 1
        detail = f"'{token}' matches no single team member" if token else "no next speaker named"
        logger.warning("Unroutable coordinator turn: %s", detail)
        if (
            self.unroutable_policy == UnroutablePolicy.RAISE
            or state.unrouted_turns > self.max_unrouted_turns
        ):
            raise UnroutableSpeakerError(f"Cannot route next turn: {detail}", state)

        roster = "\n".join(member.name for member in state.members)
        nudge = self.nudge_prompt.render(
            next_speaker_marker=self.markers.next_speaker,
            completion_marker=self.markers.completion,
            roster=roster,
        )
        return [self._post_user_message(nudge)]

    def _invoke(self, agent: Agent) -> list[Message]:
        state = self.state
        if state.turns_taken >= self.max_turns:
            raise TurnLimitExceeded(f"Conversation exceeded {self.max_turns} turns", state)
        replies = self._guarded(self._thread.invoke, agent.handle, operation=f"turn of {agent.name}")
        state.turns_taken += 1
        role = MessageRole.COORDINATOR if agent.name == state.coordinator.name else MessageRole.MEMBER
        return [state.append_message(reply, agent, role) for reply in replies]

    def _post_user_message(self, text: str) -> Message:
        posted = self._guarded(self._thread.add_user_message, text, operation="post user message")
        return self.state.append_message(posted, None, MessageRole.USER)

    def _guarded(self, fn, *args, operation: str):
        return call_with_timeout(
            fn,
            *args,
            timeout=self.timeout,
            cancel_token=self.cancel_token,
            operation=operation,
        )

    @staticmethod
    def _text(messages: list[Message]) -> str:
        return "\n".join(message.content for message in messages)
