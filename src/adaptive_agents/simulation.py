"""Deterministic simulation harness for the goal planning loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import cycle
from typing import Callable, Iterable

import pandas as pd

from .capability_registry import CapabilityRegistry
from .interfaces import PlanningService
from .models import LoopResult, PlanFailure, PlanSuccess
from .planning_loop import GoalPlanningLoop
from .stubs import (
    EndlessGapPlanner,
    RequirementPlanner,
    ScriptedPlanningService,
    StubAgentFactory,
    format_gap_diagnostic,
    helper,
)
from .synthesizer import CapabilitySynthesizer


@dataclass
class SimulationResult:
    session_id: int
    scenario: str
    goal: str
    attempts: int
    outcome: str
    synthesized: list[str] = field(default_factory=list)
    agents_created: int = 0
    agents_released: int = 0


@dataclass
class OutcomeStats:
    outcome: str
    sessions: int
    avg_attempts: float
    avg_synthesized: float


@dataclass(frozen=True)
class Scenario:
    name: str
    goal: str
    planner: Callable[[], PlanningService]


SIMULATION_SCENARIOS: list[Scenario] = [
    Scenario(
        name="ready",
        goal="Summarize the revenue highlights for Q1.",
        planner=lambda: ScriptedPlanningService([PlanSuccess(output="Q1 revenue grew 12%")]),
    ),
    Scenario(
        name="one_gap",
        goal="Tell me the ratio of even vs odd digits in the first 1000 decimals of Pi.",
        planner=lambda: RequirementPlanner(
            [[helper("PiDigits", "Returns the first n decimals of Pi", count="integer")]],
            output="ratio 0.98",
        ),
    ),
    Scenario(
        name="two_rounds",
        goal="Compare two product launch campaigns and chart the differences.",
        planner=lambda: RequirementPlanner(
            [
                [helper("CampaignData", "Loads campaign metrics", campaign="string")],
                [
                    helper("CompareSeries", "Compares two metric series"),
                    helper("RenderChart", "Renders a chart description"),
                ],
            ],
            output="comparison ready",
        ),
    ),
    Scenario(
        name="hallucinated",
        goal="Email me a list of meetings I have scheduled today.",
        planner=lambda: ScriptedPlanningService(
            [
                PlanFailure(
                    diagnostic=(
                        "HallucinatedHelpers: the plan references helper "
                        "Calendar-GetMeetings which does not exist."
                    )
                )
            ]
        ),
    ),
    Scenario(
        name="malformed",
        goal="Compile regulatory updates by region.",
        planner=lambda: ScriptedPlanningService(
            [PlanFailure(diagnostic="Planner output: [{\"Name\": \"Regulations\", ")]
        ),
    ),
    Scenario(
        name="endless",
        goal="Solve an open-ended research question.",
        planner=lambda: EndlessGapPlanner(),
    ),
    Scenario(
        name="reappearing",
        goal="Translate the manual into Dutch.",
        planner=lambda: ScriptedPlanningService(
            [PlanFailure(diagnostic=format_gap_diagnostic([helper("Translate", "Translates text")]))]
        ),
    ),
]


def run_simulation(
    num_sessions: int = 70,
    max_iterations: int = 4,
) -> tuple[list[SimulationResult], list[OutcomeStats]]:
    """Run N scripted planning sessions and return row-wise + aggregated results."""
    results: list[SimulationResult] = []
    scenario_cycle = cycle(SIMULATION_SCENARIOS)

    for session_id in range(1, num_sessions + 1):
        scenario = next(scenario_cycle)
        factory = StubAgentFactory()
        loop = GoalPlanningLoop(scenario.planner())
        result = loop.run(
            scenario.goal,
            CapabilityRegistry(),
            CapabilitySynthesizer(factory),
            max_iterations=max_iterations,
        )
        results.append(
            SimulationResult(
                session_id=session_id,
                scenario=scenario.name,
                goal=scenario.goal,
                attempts=result.attempts,
                outcome=_outcome_label(result),
                synthesized=list(result.synthesized),
                agents_created=len(factory.created),
                agents_released=sum(1 for handle in factory.created if handle.released),
            )
        )

    return results, _aggregate_outcomes(results)


def print_simulation_report(num_sessions: int = 70) -> None:
    """Run the simulation and print formatted tables."""
    rows, stats = run_simulation(num_sessions=num_sessions)
    df_main = pd.DataFrame(
        [
            {
                "Session": r.session_id,
                "Scenario": r.scenario,
                "Attempts": r.attempts,
                "Outcome": r.outcome,
                "Synthesized": ", ".join(r.synthesized),
                "Created": r.agents_created,
                "Released": r.agents_released,
            }
            for r in rows
        ]
    )

    df_outcomes = pd.DataFrame(
        [
            {
                "Outcome": stat.outcome,
                "Sessions": stat.sessions,
                "AvgAttempts": round(stat.avg_attempts, 2),
                "AvgSynthesized": round(stat.avg_synthesized, 2),
            }
            for stat in stats
        ]
    ).sort_values(by="Sessions", ascending=False)

    print("=== Simulation Results ({} Sessions) ===".format(len(df_main)))
    print(df_main.to_string(index=False))
    print("\n=== Outcomes ===")
    print(df_outcomes.to_string(index=False))


def _outcome_label(result: LoopResult) -> str:
    if result.succeeded:
        return "success"
    return result.failure_kind.value if result.failure_kind else "failure"


def _aggregate_outcomes(rows: Iterable[SimulationResult]) -> list[OutcomeStats]:
    frame = pd.DataFrame(
        [
            {"outcome": row.outcome, "attempts": row.attempts, "synthesized": len(row.synthesized)}
            for row in rows
        ]
    )
    if frame.empty:
        return []
    grouped = frame.groupby("outcome").agg(
        sessions=("attempts", "size"),
        avg_attempts=("attempts", "mean"),
        avg_synthesized=("synthesized", "mean"),
    )
    return [
        OutcomeStats(
            outcome=str(outcome),
            sessions=int(row.sessions),
            avg_attempts=float(row.avg_attempts),
            avg_synthesized=float(row.avg_synthesized),
        )
        for outcome, row in grouped.iterrows()
    ]
