"""Tests for agent prompt infrastructure."""

from adaptive_agents.agent_prompts import (
    AgentPrompt,
    DEFAULT_AGENT_PROMPTS,
    fill_template,
    list_default_prompts,
    resolve_prompt,
)


def test_default_prompt_keys_present():
    """Every component that instructs an agent has a default prompt."""
    expected = {
        "team_composer",
        "member_boundary",
        "coordinator",
        "capability_synthesizer",
        "unroutable_nudge",
    }
    assert expected.issubset(DEFAULT_AGENT_PROMPTS.keys())


def test_resolve_prompt_overrides_text():
    """resolve_prompt should wrap simple strings into AgentPrompt."""
    custom = resolve_prompt("coordinator", "Custom coordinator instructions")
    assert isinstance(custom, AgentPrompt)
    assert custom.instructions == "Custom coordinator instructions"
    assert custom.name == DEFAULT_AGENT_PROMPTS["coordinator"].name
    assert resolve_prompt("coordinator", None) is DEFAULT_AGENT_PROMPTS["coordinator"]


def test_list_default_prompts_returns_copy():
    """list_default_prompts must return a shallow copy to avoid mutation."""
    prompts_a = list_default_prompts()
    prompts_b = list_default_prompts()
    prompts_a["team_composer"] = AgentPrompt(
        name="Override",
        role="Override",
        instructions="Override",
    )
    assert prompts_b["team_composer"] == DEFAULT_AGENT_PROMPTS["team_composer"]


def test_fill_template_variants():
    template = "Goal: {{goal}} / {{$goal}} / {{ missing }}"

    assert fill_template(template, {"goal": "pi"}) == "Goal: pi / pi / {{ missing }}"


def test_coordinator_prompt_renders_completely():
    rendered = DEFAULT_AGENT_PROMPTS["coordinator"].render(
        assignment="Write a haiku",
        roster="Ann - Analyst",
        next_speaker_marker="NEXT SPEAKER:",
        completion_marker="FINAL ANSWER",
    )
    assert "'Write a haiku'" in rendered
    assert "NEXT SPEAKER:<speaker name>" in rendered
    assert "{{" not in rendered
