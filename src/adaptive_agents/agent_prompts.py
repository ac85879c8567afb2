"""Centralized prompt definitions loaded from JSON files."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Mapping


@dataclass(frozen=True)
class AgentPrompt:
    """Structured metadata for an agent prompt."""

    name: str
    role: str
    instructions: str

    def render(self, **variables: object) -> str:
        """Fill ``{{variable}}`` placeholders in the instructions."""
        return fill_template(self.instructions, variables)


PROMPT_FILES: Dict[str, str] = {
    "team_composer": "team_composer.json",
    "member_boundary": "member_boundary.json",
    "coordinator": "coordinator.json",
    "capability_synthesizer": "capability_synthesizer.json",
    "unroutable_nudge": "unroutable_nudge.json",
}

PROMPT_DIR = Path(__file__).with_name("prompts")

_PLACEHOLDER = re.compile(r"\{\{\s*\$?(\w+)\s*\}\}")


@lru_cache(maxsize=None)
def _load_prompt_from_file(key: str) -> AgentPrompt:
    """Load a prompt from its JSON definition."""
    filename = PROMPT_FILES[key]
    path = PROMPT_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found for key '{key}': {path}")
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return AgentPrompt(**data)


DEFAULT_AGENT_PROMPTS: Dict[str, AgentPrompt] = {
    key: _load_prompt_from_file(key) for key in PROMPT_FILES
}


def list_default_prompts() -> Dict[str, AgentPrompt]:
    """Expose a shallow copy of the default prompt mapping."""
    return dict(DEFAULT_AGENT_PROMPTS)


def resolve_prompt(key: str, prompt: AgentPrompt | str | None) -> AgentPrompt:
    """Return an AgentPrompt instance for the requested component."""
    base = DEFAULT_AGENT_PROMPTS[key]
    if prompt is None:
        return base
    if isinstance(prompt, AgentPrompt):
        return prompt
    return AgentPrompt(name=base.name, role=base.role, instructions=str(prompt))


def fill_template(template: str, variables: Mapping[str, object]) -> str:
    """Replace ``{{name}}`` (or ``{{$name}}``) placeholders; unknown names are left as-is."""

    def _substitute(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return _PLACEHOLDER.sub(_substitute, template)
