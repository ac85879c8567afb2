"""Tests for the goal planning loop."""

import time

import pytest

from adaptive_agents.capability_registry import CapabilityRegistry
from adaptive_agents.errors import (
    BackendTimeoutError,
    ResourceReleaseError,
    SessionCancelled,
    SynthesisFailure,
)
from adaptive_agents.guarded_call import CancellationToken
from adaptive_agents.models import Capability, FailureKind, PlanFailure, PlanSuccess
from adaptive_agents.planning_loop import GoalPlanningLoop
from adaptive_agents.stubs import (
    EndlessGapPlanner,
    RequirementPlanner,
    ScriptedPlanningService,
    StubAgentFactory,
    StubAgentHandle,
    format_gap_diagnostic,
    helper,
)
from adaptive_agents.synthesizer import CapabilitySynthesizer


def test_single_gap_then_success(factory, registry):
    """One gap named Foo is synthesized and the second attempt succeeds."""
    planner = ScriptedPlanningService(
        [
            PlanFailure(diagnostic=format_gap_diagnostic([helper("Foo", "Does foo")])),
            PlanSuccess(output="done"),
        ]
    )

    result = GoalPlanningLoop(planner).run("X", registry, CapabilitySynthesizer(factory), max_iterations=5)

    assert result.succeeded
    assert result.output == "done"
    assert result.attempts == 2
    assert result.synthesized == ["Foo"]
    assert registry.is_registered("Foo")
    assert planner.calls == [[], ["Foo"]]


def test_every_synthesized_agent_is_released_on_success(factory, registry):
    planner = RequirementPlanner(
        [[helper("PiDigits")], [helper("DigitRatio"), helper("Report")]],
        output="ok",
    )

    result = GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=5)

    assert result.succeeded
    assert result.attempts == 3
    assert sorted(result.synthesized) == ["DigitRatio", "PiDigits", "Report"]
    assert len(factory.created) == 3
    assert all(handle.release_count == 1 for handle in factory.created)


def test_endless_new_gaps_stop_at_bound(factory, registry):
    """A planner that always reports a new gap cannot keep the loop running."""
    planner = EndlessGapPlanner()

    result = GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=4)

    assert not result.succeeded
    assert result.failure_kind == FailureKind.ITERATION_LIMIT
    assert result.attempts == 4
    assert planner.calls == 4
    assert "Helper4" in result.reason
    assert result.synthesized == ["Helper1", "Helper2", "Helper3"]
    assert len(factory.created) == 3
    assert all(handle.released for handle in factory.created)


def test_last_attempt_synthesizes_nothing(factory, registry):
    """No sub-agent is created for gaps no later attempt could use."""
    planner = ScriptedPlanningService([PlanFailure(diagnostic=format_gap_diagnostic([helper("Foo")]))])

    result = GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=1)

    assert result.failure_kind == FailureKind.ITERATION_LIMIT
    assert result.attempts == 1
    assert factory.created == []
    assert not registry.is_registered("Foo")


def test_hallucinated_capability_is_terminal(factory, registry):
    diagnostic = "HallucinatedHelpers: the template calls Calendar-GetMeetings which does not exist."
    planner = ScriptedPlanningService([PlanFailure(diagnostic=diagnostic), PlanSuccess(output="never")])

    result = GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=5)

    assert not result.succeeded
    assert result.failure_kind == FailureKind.HALLUCINATED_CAPABILITY
    assert result.reason == diagnostic
    assert result.attempts == 1
    assert factory.created == []


def test_malformed_diagnostic_is_terminal(factory, registry):
    diagnostic = 'Required helpers: [{"Name": "Foo", "Description": '
    planner = ScriptedPlanningService([PlanFailure(diagnostic=diagnostic)])

    result = GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=5)

    assert result.failure_kind == FailureKind.MALFORMED_DIAGNOSTIC
    assert result.reason == diagnostic
    assert len(planner.calls) == 1


def test_reappearing_gap_is_not_retried(factory, registry):
    """A gap still reported after synthesis ends the loop instead of spinning."""
    planner = ScriptedPlanningService([PlanFailure(diagnostic=format_gap_diagnostic([helper("Foo")]))])

    result = GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=10)

    assert result.failure_kind == FailureKind.GAP_NOT_SHRINKING
    assert result.attempts == 2
    assert "Foo" in result.reason
    assert result.synthesized == ["Foo"]


def test_preregistered_capability_reported_missing(factory):
    registry = CapabilityRegistry([Capability(name="Foo", description="exists")])
    planner = ScriptedPlanningService([PlanFailure(diagnostic=format_gap_diagnostic([helper("Foo")]))])

    result = GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=3)

    assert result.failure_kind == FailureKind.GAP_NOT_SHRINKING
    assert result.attempts == 1


def test_duplicate_gaps_in_one_diagnostic_are_synthesized_once(factory, registry):
    planner = ScriptedPlanningService(
        [
            PlanFailure(diagnostic=format_gap_diagnostic([helper("Foo"), helper("Foo")])),
            PlanSuccess(output="ok"),
        ]
    )

    result = GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=3)

    assert result.succeeded
    assert result.synthesized == ["Foo"]
    assert len(factory.created) == 1


def test_synthesis_failure_propagates_and_releases(registry):
    """A failed instantiation aborts the loop; agents created so far are released."""
    factory = StubAgentFactory(failing_names={"Bar"})
    planner = ScriptedPlanningService(
        [PlanFailure(diagnostic=format_gap_diagnostic([helper("Foo"), helper("Bar")]))]
    )

    with pytest.raises(SynthesisFailure):
        GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=3)

    assert [handle.name for handle in factory.created] == ["Foo"]
    assert factory.created[0].released


def test_planner_exception_propagates_unmodified(factory, registry):
    error = RuntimeError("planner backend exploded")

    def explode(goal, capabilities):
        raise error

    planner = ScriptedPlanningService(
        [PlanFailure(diagnostic=format_gap_diagnostic([helper("Foo")])), explode]
    )

    with pytest.raises(RuntimeError) as exc_info:
        GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(factory), max_iterations=3)

    assert exc_info.value is error
    assert factory.created[0].released


def test_retry_predicate_can_decline(factory, registry):
    planner = EndlessGapPlanner()
    loop = GoalPlanningLoop(planner, retry_predicate=lambda attempt, analysis: attempt.iteration < 2)

    result = loop.run("goal", registry, CapabilitySynthesizer(factory), max_iterations=10)

    assert result.failure_kind == FailureKind.RETRY_DECLINED
    assert result.attempts == 2
    assert result.synthesized == ["Helper1"]


def test_on_attempt_sees_registry_snapshots(factory, registry):
    attempts = []
    planner = RequirementPlanner([[helper("Foo")]])
    loop = GoalPlanningLoop(planner, on_attempt=attempts.append)

    loop.run("goal", registry, CapabilitySynthesizer(factory), max_iterations=3)

    assert [a.registry_snapshot for a in attempts] == [[], ["Foo"]]
    assert [a.succeeded for a in attempts] == [False, True]
    assert all(a.goal == "goal" for a in attempts)


def test_max_iterations_must_be_positive(factory, registry):
    loop = GoalPlanningLoop(ScriptedPlanningService([PlanSuccess(output=1)]))

    with pytest.raises(ValueError):
        loop.run("goal", registry, CapabilitySynthesizer(factory), max_iterations=0)


def test_cancelled_session_stops_before_planning(factory, registry):
    token = CancellationToken()
    token.cancel("user aborted")
    planner = ScriptedPlanningService([PlanSuccess(output=1)])

    with pytest.raises(SessionCancelled):
        GoalPlanningLoop(planner, cancel_token=token).run(
            "goal", registry, CapabilitySynthesizer(factory), max_iterations=3
        )

    assert planner.calls == []


def test_unresponsive_planner_times_out(factory, registry):
    def hang(goal, capabilities):
        time.sleep(0.5)
        return PlanSuccess(output="late")

    loop = GoalPlanningLoop(ScriptedPlanningService([hang]), timeout=0.05)

    with pytest.raises(BackendTimeoutError):
        loop.run("goal", registry, CapabilitySynthesizer(factory), max_iterations=2)


def test_release_failure_keeps_the_result(registry):
    class StuckHandle(StubAgentHandle):
        def release(self):
            raise RuntimeError("backend refused delete")

    class StuckFactory(StubAgentFactory):
        def create(self, name, description, instructions, capability_set):
            handle = StuckHandle(name, instructions)
            self.created.append(handle)
            return handle

    planner = RequirementPlanner([[helper("Foo")]], output="done")

    with pytest.raises(ResourceReleaseError) as exc_info:
        GoalPlanningLoop(planner).run("goal", registry, CapabilitySynthesizer(StuckFactory()), max_iterations=3)

    assert exc_info.value.result.succeeded
    assert exc_info.value.result.output == "done"
    assert exc_info.value.failures[0][0] == "Foo"
