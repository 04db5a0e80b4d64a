"""Stateless impact assessment engine.

Runs the full pipeline for one functional unit and one method: process
graph → activity levels → category scores → lifecycle phase breakdown.
Improvement candidates are independent runs evaluated in parallel and
gathered for ranking.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from lca_engine.core.logging import assessment_context, get_logger
from lca_engine.modules.assessment.errors import AssessmentError
from lca_engine.modules.assessment.graph import ProcessGraph, build_process_graph
from lca_engine.modules.assessment.impact import Characterization, characterize
from lca_engine.modules.assessment.methods.loader import MethodRegistry
from lca_engine.modules.assessment.phases import aggregate_by_phase
from lca_engine.modules.assessment.ranking import apply_candidate, rank
from lca_engine.modules.assessment.schemas import (
    AssessmentResult,
    CharacterizationFactorSet,
    FailedCandidate,
    Flow,
    FunctionalUnit,
    ImpactResult,
    ImprovementCandidate,
    ImprovementReport,
    Process,
)
from lca_engine.modules.assessment.solver import DEFAULT_TOLERANCE, ActivityVector, solve_graph

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Run:
    graph: ProcessGraph
    activity: ActivityVector
    characterization: Characterization


class AssessmentEngine:
    """Impact assessment over immutable inventory records.

    Usage::

        engine = AssessmentEngine(MethodRegistry())
        result = engine.assess(processes, flows, FunctionalUnit(flow_id="panel"), "ReCiPe")
    """

    def __init__(
        self,
        registry: MethodRegistry,
        *,
        tolerance: float = DEFAULT_TOLERANCE,
        solve_timeout: float | None = None,
        max_workers: int = 4,
        high_priority_threshold: float = 0.15,
        medium_priority_threshold: float = 0.05,
    ) -> None:
        self._registry = registry
        self._tolerance = tolerance
        self._solve_timeout = solve_timeout
        self._max_workers = max_workers
        self._high_priority_threshold = high_priority_threshold
        self._medium_priority_threshold = medium_priority_threshold

    @property
    def registry(self) -> MethodRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def assess(
        self,
        processes: Sequence[Process],
        flows: Sequence[Flow],
        functional_unit: FunctionalUnit,
        method: str,
        *,
        headline_category: str | None = None,
    ) -> AssessmentResult:
        """Assess the network delivering *functional_unit* under *method*.

        Structural problems (unresolved flows, ambiguous references,
        singular systems, timeouts) raise and yield no result. Missing
        factors and disconnected processes are returned as warnings.
        """
        factor_set = self._registry.get(method)
        headline = self._resolve_headline(factor_set, headline_category)

        with assessment_context(method=factor_set.method):
            run = self._run(processes, flows, functional_unit, factor_set)
        results = run.characterization.results
        breakdown = aggregate_by_phase(
            results[headline].contributions,
            run.graph.phase_of(),
            category=headline,
        )
        warnings = [
            w.to_record() for w in (*run.activity.warnings, *run.characterization.warnings)
        ]

        logger.info(
            "assessment_completed",
            method=factor_set.method,
            functional_unit=functional_unit.flow_id,
            processes=len(run.graph.processes),
            headline_category=headline,
            headline_value=results[headline].value,
            warnings=len(warnings),
        )

        return AssessmentResult(
            method=factor_set.method,
            method_version=factor_set.version,
            functional_unit=functional_unit,
            headline_category=headline,
            activity={
                pid: level
                for pid, level in run.activity.as_dict().items()
                if pid not in run.activity.excluded
            },
            impacts=results,
            phase_breakdown=breakdown,
            warnings=warnings,
            incomplete=bool(warnings),
        )

    def evaluate_improvements(
        self,
        processes: Sequence[Process],
        flows: Sequence[Flow],
        functional_unit: FunctionalUnit,
        candidates: Sequence[ImprovementCandidate],
        method: str,
        *,
        headline_category: str | None = None,
    ) -> ImprovementReport:
        """Evaluate every candidate against the baseline and rank them.

        The baseline must assess cleanly. Candidate runs are scattered over
        a thread pool; a failing or timed-out candidate is reported in
        ``failed`` without affecting the others.
        """
        ids = [c.id for c in candidates]
        if len(set(ids)) != len(ids):
            raise ValueError("Improvement candidate ids must be unique")

        baseline = self.assess(
            processes,
            flows,
            functional_unit,
            method,
            headline_category=headline_category,
        )
        factor_set = self._registry.get(method)
        headline = baseline.headline_category

        evaluations: list[tuple[ImprovementCandidate, ImpactResult]] = []
        failed: list[FailedCandidate] = []

        with ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix="lca-candidate",
        ) as pool:
            futures: list[tuple[ImprovementCandidate, Future[ImpactResult]]] = [
                (
                    candidate,
                    pool.submit(
                        self._evaluate_candidate,
                        processes,
                        flows,
                        functional_unit,
                        factor_set,
                        candidate,
                        headline,
                    ),
                )
                for candidate in sorted(candidates, key=lambda c: c.id)
            ]
            for candidate, future in futures:
                try:
                    evaluations.append((candidate, future.result()))
                except AssessmentError as exc:
                    logger.warning(
                        "improvement_candidate_failed",
                        candidate_id=candidate.id,
                        code=exc.code,
                        error=str(exc),
                    )
                    failed.append(
                        FailedCandidate(candidate_id=candidate.id, code=exc.code, message=str(exc))
                    )

        ranked = rank(
            baseline.headline,
            evaluations,
            high_threshold=self._high_priority_threshold,
            medium_threshold=self._medium_priority_threshold,
        )

        logger.info(
            "improvements_ranked",
            method=factor_set.method,
            category=headline,
            candidates=len(candidates),
            ranked=len(ranked),
            failed=len(failed),
        )

        return ImprovementReport(
            method=factor_set.method,
            category=headline,
            unit=baseline.headline.unit,
            baseline_value=baseline.headline.value,
            ranked=ranked,
            failed=failed,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        processes: Sequence[Process],
        flows: Sequence[Flow],
        functional_unit: FunctionalUnit,
        factor_set: CharacterizationFactorSet,
    ) -> _Run:
        graph = build_process_graph(processes, flows)
        activity = solve_graph(
            graph,
            functional_unit,
            tolerance=self._tolerance,
            timeout=self._solve_timeout,
        )
        return _Run(graph, activity, characterize(activity, graph, factor_set))

    def _evaluate_candidate(
        self,
        processes: Sequence[Process],
        flows: Sequence[Flow],
        functional_unit: FunctionalUnit,
        factor_set: CharacterizationFactorSet,
        candidate: ImprovementCandidate,
        headline: str,
    ) -> ImpactResult:
        with assessment_context(method=factor_set.method, candidate_id=candidate.id):
            candidate_processes, candidate_flows = apply_candidate(processes, flows, candidate)
            run = self._run(candidate_processes, candidate_flows, functional_unit, factor_set)
            return run.characterization.results[headline]

    @staticmethod
    def _resolve_headline(
        factor_set: CharacterizationFactorSet,
        headline_category: str | None,
    ) -> str:
        headline = headline_category or factor_set.primary_category
        if headline not in factor_set.category_names():
            raise ValueError(
                f"Unknown impact category '{headline}' for method '{factor_set.method}'. "
                f"Valid categories: {', '.join(factor_set.category_names())}"
            )
        return headline
