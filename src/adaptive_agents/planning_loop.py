"""Goal planning loop - plan, recover missing capabilities, retry."""

import logging
from typing import Callable, Optional, Protocol

from .capability_registry import CapabilityRegistry
from .gap_extractor import GapExtractor
from .guarded_call import CancellationToken, call_with_timeout
from .interfaces import PlanningService
from .models import (
    Capability,
    CapabilityGapRequest,
    DiagnosticAnalysis,
    DiagnosticKind,
    FailureKind,
    LoopResult,
    PlanAttempt,
    PlanFailure,
    PlanSuccess,
)
from .resources import ResourceScope

logger = logging.getLogger(__name__)

RetryPredicate = Callable[[PlanAttempt, DiagnosticAnalysis], bool]


class CapabilitySource(Protocol):
    """Anything that can synthesize a capability for a gap."""

    def synthesize(
        self,
        request: CapabilityGapRequest,
        resources: Optional[ResourceScope] = None,
    ) -> Capability:
        ...


def always_retry(attempt: PlanAttempt, analysis: DiagnosticAnalysis) -> bool:
    """Default retry predicate: every recoverable gap is worth another attempt."""
    return True


class GoalPlanningLoop:
    """Repeats plan attempts, synthesizing missing capabilities between them."""

    def __init__(
        self,
        planning_service: PlanningService,
        gap_extractor: Optional[GapExtractor] = None,
        retry_predicate: Optional[RetryPredicate] = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
        on_attempt: Optional[Callable[[PlanAttempt], None]] = None,
    ):
        """Initialize the loop with its planner and recovery policy."""
        self.planning_service = planning_service
        self.gap_extractor = gap_extractor or GapExtractor()
        self.retry_predicate = retry_predicate or always_retry
        self.timeout = timeout
        self.cancel_token = cancel_token
        self.on_attempt = on_attempt

    def run(
        self,
        goal: str,
        registry: CapabilityRegistry,
        capability_source: CapabilitySource,
        max_iterations: int,
    ) -> LoopResult:
        """Run attempts until success, a terminal diagnostic, or the iteration bound.

        Every sub-agent created for a synthesized capability is released
        before this method returns or raises.
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        with ResourceScope(f"goal '{goal[:40]}'") as resources:
            resources.result = self._run_attempts(
                goal, registry, capability_source, max_iterations, resources
            )
        return resources.result

    def _run_attempts(
        self,
        goal: str,
        registry: CapabilityRegistry,
        capability_source: CapabilitySource,
        max_iterations: int,
        resources: ResourceScope,
    ) -> LoopResult:
        synthesized: list[str] = []
        for iteration in range(1, max_iterations + 1):
            if self.cancel_token is not None:
                self.cancel_token.raise_if_cancelled()

            attempt = self._attempt(goal, registry, iteration)
            if self.on_attempt is not None:
                self.on_attempt(attempt)

            if isinstance(attempt.outcome, PlanSuccess):
                logger.info("Goal succeeded after %d attempt(s)", iteration)
                return LoopResult.success(attempt.outcome.output, iteration, synthesized)

            diagnostic = attempt.outcome.diagnostic
            analysis = self.gap_extractor.analyze(diagnostic)

            if not analysis.is_recoverable:
                kind = (
                    FailureKind.HALLUCINATED_CAPABILITY
                    if analysis.kind == DiagnosticKind.HALLUCINATED_CAPABILITY
                    else FailureKind.MALFORMED_DIAGNOSTIC
                )
                logger.warning("Non-recoverable planner failure (%s)", kind.value)
                return LoopResult.failure(kind, diagnostic, iteration, synthesized)

            gaps = self._dedupe(analysis.gaps or [])
            reappearing = [gap.name for gap in gaps if registry.is_registered(gap.name)]
            if reappearing:
                reason = (
                    "Planner still reports registered capabilities as missing: "
                    f"{', '.join(reappearing)}. Diagnostic: {diagnostic}"
                )
                logger.warning("Gap not shrinking: %s", ", ".join(reappearing))
                return LoopResult.failure(
                    FailureKind.GAP_NOT_SHRINKING, reason, iteration, synthesized
                )

            if iteration == max_iterations:
                # no attempt left that could use new capabilities
                break

            if not self.retry_predicate(attempt, analysis):
                return LoopResult.failure(
                    FailureKind.RETRY_DECLINED, diagnostic, iteration, synthesized
                )

            for gap in gaps:
                capability = capability_source.synthesize(gap, resources=resources)
                registry.register(capability)
                synthesized.append(capability.name)
            logger.info(
                "Attempt %d: synthesized %s, retrying",
                iteration,
                ", ".join(gap.name for gap in gaps),
            )

        reason = (
            f"Goal not reached within {max_iterations} iteration(s); "
            f"last diagnostic: {diagnostic}"
        )
        logger.warning("Iteration limit reached for goal")
        return LoopResult.failure(
            FailureKind.ITERATION_LIMIT, reason, max_iterations, synthesized
        )

    def _attempt(self, goal: str, registry: CapabilityRegistry, iteration: int) -> PlanAttempt:
        """Make one guarded call to the planning service."""
        outcome = call_with_timeout(
            self.planning_service.attempt,
            goal,
            registry.capabilities(),
            timeout=self.timeout,
            cancel_token=self.cancel_token,
            operation="plan attempt",
        )
        if not isinstance(outcome, (PlanSuccess, PlanFailure)):
            raise TypeError(
                f"PlanningService.attempt returned {type(outcome).__name__}, "
                "expected PlanSuccess or PlanFailure"
            )
        return PlanAttempt(
            iteration=iteration,
            goal=goal,
            registry_snapshot=registry.snapshot(),
            outcome=outcome,
        )

    @staticmethod
    def _dedupe(gaps: list[CapabilityGapRequest]) -> list[CapabilityGapRequest]:
        seen: set[str] = set()
        unique = []
        for gap in gaps:
            if gap.name not in seen:
                seen.add(gap.name)
                unique.append(gap)
        return unique
