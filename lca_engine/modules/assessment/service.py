"""Assessment service: configuration-aware layer over ``AssessmentEngine``.

Resolves the default method from settings, attaches baseline comparisons
and exposes the method catalogue.
"""

from __future__ import annotations

from lca_engine.core.config import get_settings
from lca_engine.core.logging import get_logger
from lca_engine.modules.assessment.comparison import compare_results
from lca_engine.modules.assessment.engine import AssessmentEngine
from lca_engine.modules.assessment.methods.loader import MethodRegistry
from lca_engine.modules.assessment.schemas import (
    AssessmentReport,
    AssessmentRequest,
    ImprovementReport,
    ImprovementRequest,
    MethodSummary,
)

logger = get_logger(__name__)

# Module-level singleton engine (loaded once, reused across requests)
_engine: AssessmentEngine | None = None


def _get_engine() -> AssessmentEngine:
    """Return the module-level AssessmentEngine singleton."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        settings = get_settings()
        registry = MethodRegistry(methods_dir=settings.lca_methods_path or None)
        _engine = AssessmentEngine(
            registry,
            tolerance=settings.lca_zero_tolerance,
            solve_timeout=settings.lca_solve_timeout_seconds,
            max_workers=settings.lca_max_workers,
            high_priority_threshold=settings.lca_priority_high_threshold,
            medium_priority_threshold=settings.lca_priority_medium_threshold,
        )
    return _engine


class AssessmentService:
    """Runs assessments and improvement rankings for API requests.

    Usage::

        service = AssessmentService()
        report = service.assess(request)
    """

    def __init__(self, engine: AssessmentEngine | None = None) -> None:
        self._engine = engine or _get_engine()

    def list_methods(self) -> list[MethodSummary]:
        return self._engine.registry.summaries()

    def assess(self, request: AssessmentRequest) -> AssessmentReport:
        """Assess the request's inventory and compare against its prior values.

        Raises:
            AssessmentError: The inventory is structurally invalid, the
                solve timed out, or the method is unknown.
            ValueError: The headline category does not exist in the method.
        """
        settings = get_settings()
        result = self._engine.assess(
            request.processes,
            request.flows,
            request.functional_unit,
            request.method or settings.lca_default_method,
            headline_category=request.headline_category,
        )
        comparison = []
        if request.prior_impacts:
            comparison = compare_results(
                result,
                request.prior_impacts,
                warning_threshold=settings.lca_change_warning_threshold,
                stable_threshold=settings.lca_change_stable_threshold,
            )
        return AssessmentReport(result=result, comparison=comparison)

    def rank_improvements(self, request: ImprovementRequest) -> ImprovementReport:
        """Evaluate and rank the request's improvement candidates."""
        settings = get_settings()
        return self._engine.evaluate_improvements(
            request.processes,
            request.flows,
            request.functional_unit,
            request.candidates,
            request.method or settings.lca_default_method,
            headline_category=request.headline_category,
        )
