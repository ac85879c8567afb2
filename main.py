"""Command-line demo harness for adaptive agents."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from adaptive_agents.capability_registry import CapabilityRegistry
from adaptive_agents.collaboration import run_collaboration
from adaptive_agents.models import ConversationState
from adaptive_agents.planning_loop import GoalPlanningLoop
from adaptive_agents.settings import AdaptiveAgentsSettings
from adaptive_agents.simulation import print_simulation_report
from adaptive_agents.strategy import StrategyProfile
from adaptive_agents.stubs import (
    RequirementPlanner,
    ScriptedTransport,
    StaticGenerationService,
    StubAgentFactory,
    helper,
)
from adaptive_agents.synthesizer import CapabilitySynthesizer
from adaptive_agents.team_composer import TeamComposer

DEMO_TEAM = [
    {
        "name": "Ann",
        "role": "Analyst",
        "instructions": "You analyse the problem statement and derive the constraints.",
        "description": "Turns the assignment into precise constraints.",
    },
    {
        "name": "Bob",
        "role": "Programmer",
        "instructions": "You write and run Python code that searches for the answer.",
        "description": "Implements and runs the search.",
    },
]

DEMO_SCRIPTS = {
    "Project Manager": [
        "Ann, derive the constraints. Bob, be ready to search.",
        "Ann, please list the constraints.\nNEXT SPEAKER: Ann",
        "Bob, search using Ann's constraints.\nNEXT SPEAKER: Bob",
        "FINAL ANSWER: 142857",
    ],
    "Ann": ["I will derive constraints.", "x and 2x..6x share the same digits."],
    "Bob": ["Ready to search.", "Search finished: 142857."],
}


def run_planning_demo(goal: str, settings: AdaptiveAgentsSettings) -> int:
    """Run the goal planning loop against a planner that discovers two gaps."""
    planner = RequirementPlanner(
        [[helper("PiDigits", "Returns the first n decimals of Pi", count="integer")],
         [helper("DigitRatio", "Ratio of even vs odd digits", digits="string")]],
        output="even/odd ratio computed",
    )
    loop = GoalPlanningLoop(planner, timeout=settings.call_timeout_seconds)
    result = loop.run(
        goal,
        CapabilityRegistry(),
        CapabilitySynthesizer(StubAgentFactory(), timeout=settings.call_timeout_seconds),
        max_iterations=settings.limits()["max_iterations"],
    )

    print("\n=== Planning Result ===")
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if result.succeeded else 1


def run_team_demo(assignment: str, settings: AdaptiveAgentsSettings) -> int:
    """Run a scripted team collaboration."""
    composer = TeamComposer(StaticGenerationService(json.dumps(DEMO_TEAM)), StubAgentFactory())
    state = run_collaboration(assignment, composer, ScriptedTransport(DEMO_SCRIPTS), settings=settings)
    print_transcript(state)
    return 0


def print_transcript(state: ConversationState) -> None:
    """Print the conversation log."""
    print("\n=== Transcript ===")
    for message in state.log:
        print(f"[{message.sequence_number}] # {message.role.value} ({message.sender_name}): {message.content}")
    print("\n=== Final Answer ===")
    print(state.final_answer or "No final answer generated.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments for the demo."""
    parser = argparse.ArgumentParser(description="Run the adaptive agents demos.")
    parser.add_argument("mode", choices=["plan", "team", "simulate"], help="Demo to run.")
    parser.add_argument(
        "text",
        nargs="*",
        help="Goal (plan) or assignment (team).",
    )
    parser.add_argument(
        "--strategy",
        choices=[profile.value for profile in StrategyProfile],
        default=None,
        help="Strategy profile to use for the run.",
    )
    parser.add_argument("--sessions", type=int, default=70, help="Sessions to simulate.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the demo harness."""
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = AdaptiveAgentsSettings()
    if args.strategy:
        settings = settings.model_copy(update={"strategy": StrategyProfile(args.strategy)})

    text = " ".join(args.text).strip()
    if args.mode == "simulate":
        print_simulation_report(num_sessions=args.sessions)
        return 0
    if args.mode == "plan":
        return run_planning_demo(text or "Tell me the ratio of even vs odd digits in Pi.", settings)
    return run_team_demo(text or "Solve Project Euler problem 52.", settings)


if __name__ == "__main__":
    raise SystemExit(main())
