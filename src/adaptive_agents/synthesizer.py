"""Capability synthesizer - backs missing capabilities with fresh sub-agents."""

import json
import logging
from typing import Optional

from .agent_prompts import AgentPrompt, resolve_prompt
from .errors import SessionCancelled, SynthesisFailure
from .guarded_call import CancellationToken, call_with_timeout
from .interfaces import AgentFactory
from .models import Capability, CapabilityGapRequest
from .resources import ResourceScope, release_abandoned

logger = logging.getLogger(__name__)


class CapabilitySynthesizer:
    """Turns a CapabilityGapRequest into a registered-ready Capability."""

    def __init__(
        self,
        agent_factory: AgentFactory,
        resources: Optional[ResourceScope] = None,
        prompt: Optional[AgentPrompt | str] = None,
        capability_set: Optional[list[str]] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        """Initialize synthesizer.

        Args:
            agent_factory: Creates the sub-agent behind each capability
            resources: Default owner for created handles when the caller passes none
            prompt: Override for the sub-agent instruction template
            capability_set: Capabilities granted to every sub-agent
            timeout: Timeout in seconds for each agent creation
        """
        self.agent_factory = agent_factory
        self.resources = resources or ResourceScope("synthesizer")
        self.prompt = resolve_prompt("capability_synthesizer", prompt)
        self.capability_set = list(capability_set or [])
        self.timeout = timeout
        self.cancel_token = cancel_token

    def get_prompt(self) -> AgentPrompt:
        """Expose the active prompt for this synthesizer."""
        return self.prompt

    def build_instructions(self, request: CapabilityGapRequest) -> str:
        """Render sub-agent instructions embedding the gap's description and schemas."""
        return self.prompt.render(
            name=request.name,
            description=request.description or request.name,
            input_schema=json.dumps(request.input_schema, indent=2, sort_keys=True),
            output_schema=json.dumps(request.output_schema, indent=2, sort_keys=True),
        )

    def synthesize(
        self,
        request: CapabilityGapRequest,
        resources: Optional[ResourceScope] = None,
    ) -> Capability:
        """Create the backing sub-agent and return the capability bound to it."""
        owner = resources if resources is not None else self.resources
        try:
            handle = call_with_timeout(
                self.agent_factory.create,
                request.name,
                request.description,
                self.build_instructions(request),
                list(self.capability_set),
                timeout=self.timeout,
                cancel_token=self.cancel_token,
                operation=f"create agent for {request.name}",
                on_abandoned_result=release_abandoned,
            )
        except SessionCancelled:
            raise
        except Exception as e:
            raise SynthesisFailure(request.name, str(e)) from e

        owner.track(handle)
        logger.info("Synthesized capability %s", request.name)
        return Capability(
            name=request.name,
            description=request.description,
            input_schema=request.input_schema,
            output_schema=request.output_schema,
            executor=handle.invoke,
        )
