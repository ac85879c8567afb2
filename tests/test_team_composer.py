"""Tests for team composition."""

import json
import time

import pytest

from adaptive_agents.errors import BackendTimeoutError, CompositionFailure
from adaptive_agents.resources import ResourceScope
from adaptive_agents.stubs import StaticGenerationService, StubAgentFactory
from adaptive_agents.team_composer import COORDINATOR_NAME, TeamComposer


def role(name, role_title="Analyst", instructions=None, description=None):
    return {
        "name": name,
        "role": role_title,
        "instructions": instructions or f"You are {name}, an experienced {role_title.lower()}.",
        "description": description or f"{name} delivers {role_title.lower()} work.",
    }


def composer_for(payload, factory):
    response = payload if isinstance(payload, str) else json.dumps(payload)
    return TeamComposer(StaticGenerationService(response), factory)


def test_compose_returns_members_in_order(factory):
    composer = composer_for([role("A"), role("B", "Programmer"), role("C", "Writer")], factory)

    roles = composer.compose("Write a haiku about Pi")

    assert [r.name for r in roles] == ["A", "B", "C"]
    assert roles[1].role == "Programmer"


def test_compose_sends_assignment_as_variable(factory):
    service = StaticGenerationService(json.dumps([role("A"), role("B")]))
    composer = TeamComposer(service, factory)

    composer.compose("Summarize the report")

    template, variables = service.calls[0]
    assert "{{assignment}}" in template
    assert variables == {"assignment": "Summarize the report"}


def test_fenced_json_reply_is_accepted(factory):
    fenced = "```json\n" + json.dumps([role("Ann"), role("Bob")], indent=2) + "\n```"

    roles = composer_for(fenced, factory).compose("task")

    assert [r.name for r in roles] == ["Ann", "Bob"]


def test_fields_are_stripped():
    roles = TeamComposer.parse_roles(json.dumps([role("  Ann "), role("Bob")]))

    assert roles[0].name == "Ann"


@pytest.mark.parametrize("count", [0, 1, 6])
def test_team_size_out_of_range_is_rejected(factory, count):
    payload = [role(f"Member{i}") for i in range(count)]

    with pytest.raises(CompositionFailure) as exc_info:
        composer_for(payload, factory).compose("task")

    assert exc_info.value.raw_response == json.dumps(payload)


def test_team_size_bounds_are_inclusive():
    assert len(TeamComposer.parse_roles(json.dumps([role("A"), role("B")]))) == 2
    five = [role(name) for name in "ABCDE"]
    assert len(TeamComposer.parse_roles(json.dumps(five))) == 5


@pytest.mark.parametrize(
    "reply",
    [
        "",
        "   ",
        "Here is your team: Ann and Bob",
        '[{"name": "Ann", "role": "Analyst"',
        json.dumps({"name": "Ann", "role": "Analyst", "instructions": "x", "description": "y"}),
    ],
)
def test_unusable_reply_is_rejected(reply):
    with pytest.raises(CompositionFailure):
        TeamComposer.parse_roles(reply)


def test_missing_field_is_rejected():
    incomplete = role("Bob")
    del incomplete["description"]

    with pytest.raises(CompositionFailure):
        TeamComposer.parse_roles(json.dumps([role("Ann"), incomplete]))


def test_empty_field_is_rejected():
    with pytest.raises(CompositionFailure):
        TeamComposer.parse_roles(json.dumps([role("Ann"), role("Bob", instructions="   ")]))


def test_duplicate_names_are_rejected():
    with pytest.raises(CompositionFailure):
        TeamComposer.parse_roles(json.dumps([role("Ann"), role("Ann", "Programmer")]))


def test_coordinator_name_is_reserved():
    with pytest.raises(CompositionFailure):
        TeamComposer.parse_roles(json.dumps([role("Ann"), role(COORDINATOR_NAME)]))


def test_build_team_names_and_instructions(factory):
    """Members are named 'Name - Role' and carry the boundary suffix."""
    composer = composer_for([role("Ann", "Analyst"), role("Bob", "Programmer")], factory)
    resources = ResourceScope("test")

    members = composer.build_team("task", resources)

    assert [m.name for m in members] == ["Ann - Analyst", "Bob - Programmer"]
    assert members[0].instructions.startswith("You are Ann, an experienced analyst.")
    assert members[0].instructions.endswith("you are the only one with this name: Ann")
    assert "Do not speak on behalf of other members." in members[1].instructions
    assert [h.name for h in resources.active] == ["Ann - Analyst", "Bob - Programmer"]
    assert all(m.handle is h for m, h in zip(members, factory.created))


def test_failed_composition_creates_no_agents(factory):
    composer = composer_for([role("Solo")], factory)
    resources = ResourceScope("test")

    with pytest.raises(CompositionFailure):
        composer.build_team("task", resources)

    assert factory.created == []
    assert resources.active == []


def test_coordinator_knows_roster_and_markers(factory):
    composer = composer_for([role("Ann"), role("Bob", "Programmer")], factory)
    resources = ResourceScope("test")
    members = composer.build_team("Compute digits of Pi", resources)

    coordinator = composer.create_coordinator(members, "Compute digits of Pi", resources)

    assert coordinator.name == COORDINATOR_NAME
    assert "Compute digits of Pi" in coordinator.instructions
    assert "NEXT SPEAKER:" in coordinator.instructions
    assert "FINAL ANSWER" in coordinator.instructions
    assert "Bob - Programmer - Bob delivers programmer work." in coordinator.instructions
    assert "{{" not in coordinator.instructions
    assert len(resources.active) == 3


def test_member_created_after_timeout_is_released():
    class SlowFactory(StubAgentFactory):
        def create(self, name, description, instructions, capability_set):
            time.sleep(0.2)
            return super().create(name, description, instructions, capability_set)

    factory = SlowFactory()
    composer = TeamComposer(
        StaticGenerationService(json.dumps([role("Ann"), role("Bob")])), factory, timeout=0.05
    )

    with pytest.raises(BackendTimeoutError):
        with ResourceScope("test") as resources:
            composer.build_team("task", resources)

    deadline = time.monotonic() + 2.0
    while not (factory.created and factory.created[0].released) and time.monotonic() < deadline:
        time.sleep(0.02)

    assert [h.name for h in factory.created] == ["Ann - Analyst"]
    assert factory.created[0].released
