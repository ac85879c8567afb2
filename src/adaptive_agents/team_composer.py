"""Team composer - turns an assignment into a small team of role agents."""

import json
import logging
import re
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from .agent_prompts import AgentPrompt, resolve_prompt
from .errors import CompositionFailure
from .guarded_call import CancellationToken, call_with_timeout
from .interfaces import AgentFactory, StructuredGenerationService
from .models import Agent, RoleSpec
from .resources import ResourceScope, release_abandoned

logger = logging.getLogger(__name__)

MIN_TEAM_SIZE = 2
MAX_TEAM_SIZE = 5
COORDINATOR_NAME = "Project Manager"

_FENCED_JSON = re.compile(r"^\s*```(?:json)?\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_ROLE_LIST = TypeAdapter(list[RoleSpec])


class TeamComposer:
    """Composes a team from one structured-generation call."""

    def __init__(
        self,
        generation_service: StructuredGenerationService,
        agent_factory: AgentFactory,
        prompt: Optional[AgentPrompt | str] = None,
        boundary_prompt: Optional[AgentPrompt | str] = None,
        coordinator_prompt: Optional[AgentPrompt | str] = None,
        capability_set: Optional[list[str]] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.generation_service = generation_service
        self.agent_factory = agent_factory
        self.prompt = resolve_prompt("team_composer", prompt)
        self.boundary_prompt = resolve_prompt("member_boundary", boundary_prompt)
        self.coordinator_prompt = resolve_prompt("coordinator", coordinator_prompt)
        self.capability_set = list(capability_set or [])
        self.timeout = timeout
        self.cancel_token = cancel_token

    def compose(self, assignment: str) -> list[RoleSpec]:
        """Ask for a team and validate it strictly.

        Raises:
            CompositionFailure: invalid JSON, not an array, fewer than 2 or
                more than 5 roles, a missing or empty field, or duplicate names.
        """
        raw = call_with_timeout(
            self.generation_service.generate,
            self.prompt.instructions,
            {"assignment": assignment},
            timeout=self.timeout,
            cancel_token=self.cancel_token,
            operation="team composition",
        )
        return self.parse_roles(raw)

    @staticmethod
    def parse_roles(raw: str) -> list[RoleSpec]:
        """Validate a composition reply; no partial or best-effort parsing."""
        if not isinstance(raw, str) or not raw.strip():
            raise CompositionFailure("Team composition reply is empty", raw)

        text = raw
        fenced = _FENCED_JSON.match(raw)
        if fenced:
            text = fenced.group(1)

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise CompositionFailure(f"Team composition reply is not valid JSON: {e}", raw) from e

        if not isinstance(payload, list):
            raise CompositionFailure("Team composition reply must be a JSON array", raw)
        if not MIN_TEAM_SIZE <= len(payload) <= MAX_TEAM_SIZE:
            raise CompositionFailure(
                f"Team must have between {MIN_TEAM_SIZE} and {MAX_TEAM_SIZE} members, "
                f"got {len(payload)}",
                raw,
            )

        try:
            roles = _ROLE_LIST.validate_python(payload)
        except ValidationError as e:
            raise CompositionFailure(f"Invalid team member entry: {e}", raw) from e

        names = [role.name for role in roles]
        if len(set(names)) != len(names):
            raise CompositionFailure("Team member names must be unique", raw)
        if any(name == COORDINATOR_NAME for name in names):
            raise CompositionFailure(f"'{COORDINATOR_NAME}' is reserved for the coordinator", raw)
        return roles

    def member_instructions(self, role: RoleSpec) -> str:
        """Role instructions followed by the boundary-of-responsibility suffix."""
        return role.instructions + self.boundary_prompt.instructions + role.name

    def instantiate(self, roles: list[RoleSpec], resources: ResourceScope) -> list[Agent]:
        """Create one agent per role; every handle is tracked by ``resources``."""
        members: list[Agent] = []
        for role in roles:
            name = f"{role.name} - {role.role}"
            instructions = self.member_instructions(role)
            handle = resources.track(
                call_with_timeout(
                    self.agent_factory.create,
                    name,
                    role.description,
                    instructions,
                    list(self.capability_set),
                    timeout=self.timeout,
                    cancel_token=self.cancel_token,
                    operation=f"create agent {name}",
                    on_abandoned_result=release_abandoned,
                )
            )
            members.append(
                Agent(
                    name=name,
                    description=role.description,
                    instructions=instructions,
                    capability_set=list(self.capability_set),
                    handle=handle,
                )
            )
            logger.info("Created team member %s", name)
        return members

    def build_team(self, assignment: str, resources: ResourceScope) -> list[Agent]:
        """Compose and instantiate the member agents."""
        return self.instantiate(self.compose(assignment), resources)

    def create_coordinator(
        self,
        members: list[Agent],
        assignment: str,
        resources: ResourceScope,
        next_speaker_marker: str = "NEXT SPEAKER:",
        completion_marker: str = "FINAL ANSWER",
    ) -> Agent:
        """Create the project manager that routes turns and declares completion."""
        roster = "\n".join(f"{member.name} - {member.description}" for member in members)
        instructions = self.coordinator_prompt.render(
            assignment=assignment,
            roster=roster,
            next_speaker_marker=next_speaker_marker,
            completion_marker=completion_marker,
        )
        handle = resources.track(
            call_with_timeout(
                self.agent_factory.create,
                COORDINATOR_NAME,
                COORDINATOR_NAME,
                instructions,
                list(self.capability_set),
                timeout=self.timeout,
                cancel_token=self.cancel_token,
                operation="create coordinator",
                on_abandoned_result=release_abandoned,
            )
        )
        logger.info("Created coordinator for a team of %d", len(members))
        return Agent(
            name=COORDINATOR_NAME,
            description=COORDINATOR_NAME,
            instructions=instructions,
            capability_set=list(self.capability_set),
            handle=handle,
        )
