"""Comparison of an assessment against a prior baseline."""

from __future__ import annotations

from collections.abc import Mapping

from lca_engine.modules.assessment.schemas import (
    AssessmentResult,
    CategoryComparison,
    Status,
    Trend,
)


def compare_results(
    current: AssessmentResult,
    prior: AssessmentResult | Mapping[str, float] | None,
    *,
    warning_threshold: float = 5.0,
    stable_threshold: float = 0.05,
) -> list[CategoryComparison]:
    """Build one comparison entry per category of *current*.

    ``change_percent`` is relative to the magnitude of the prior value, so a
    shrinking credit (e.g. -2 → -1) reads as an increase. Categories with no
    prior value, or a prior of zero, carry no percentage.
    """
    if isinstance(prior, AssessmentResult):
        prior_values: Mapping[str, float] = {
            name: result.value for name, result in prior.impacts.items()
        }
    else:
        prior_values = prior or {}

    comparisons: list[CategoryComparison] = []
    for name, result in current.impacts.items():
        before = prior_values.get(name)
        change: float | None = None
        if before is not None and before != 0.0:
            change = round((result.value - before) / abs(before) * 100.0, 1)
        comparisons.append(
            CategoryComparison(
                category=name,
                unit=result.unit,
                value=result.value,
                prior_value=before,
                change_percent=change,
                trend=_trend(change, stable_threshold),
                status=_status(change, warning_threshold, stable_threshold),
            )
        )
    return comparisons


def _trend(change: float | None, stable_threshold: float) -> Trend:
    if change is None or abs(change) <= stable_threshold:
        return "stable"
    return "up" if change > 0 else "down"


def _status(change: float | None, warning_threshold: float, stable_threshold: float) -> Status:
    if change is None:
        return "neutral"
    if change < -stable_threshold:
        return "good"
    if change > warning_threshold:
        return "warning"
    return "neutral"
