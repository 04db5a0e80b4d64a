"""Lifecycle phase aggregation of per-process contributions."""

from __future__ import annotations

import math
from collections.abc import Mapping

from lca_engine.modules.assessment.schemas import ImpactResult, PhaseBreakdown

# Totals this small relative to the summed magnitudes are cancellation noise
_ZERO_TOTAL_RTOL = 1e-12


def aggregate_by_phase(
    contributions: Mapping[str, float],
    phase_of: Mapping[str, str],
    *,
    category: str = "",
) -> PhaseBreakdown:
    """Express per-process contributions as percentages per lifecycle phase.

    Percentages are relative to the net total and rounded to one decimal
    with largest-remainder rounding, so they add up to exactly 100.0.
    Phases whose processes contribute nothing are omitted. A zero total
    gives an all-zero breakdown over the contributing phases instead of
    dividing by zero.

    Raises:
        ValueError: A contributing process has no phase tag.
    """
    sums: dict[str, float] = {}
    contributing: set[str] = set()
    for process_id, value in contributions.items():
        phase = phase_of.get(process_id)
        if not phase:
            raise ValueError(f"Process '{process_id}' has no lifecycle phase tag")
        sums[phase] = sums.get(phase, 0.0) + value
        if value != 0.0:
            contributing.add(phase)

    total = sum(sums.values())
    magnitude = sum(abs(v) for v in contributions.values())
    if magnitude == 0.0 or abs(total) <= _ZERO_TOTAL_RTOL * magnitude:
        return PhaseBreakdown(
            category=category,
            total=0.0,
            percentages={phase: 0.0 for phase in sorted(contributing)},
        )

    raw = {phase: sums[phase] / total * 100.0 for phase in contributing}
    return PhaseBreakdown(
        category=category,
        total=total,
        percentages=_round_preserving_total(raw),
    )


def aggregate_all_categories(
    results: Mapping[str, ImpactResult],
    phase_of: Mapping[str, str],
) -> dict[str, PhaseBreakdown]:
    """Run ``aggregate_by_phase`` for every category in *results*."""
    return {
        name: aggregate_by_phase(result.contributions, phase_of, category=name)
        for name, result in results.items()
    }


def _round_preserving_total(values: dict[str, float]) -> dict[str, float]:
    """Round to tenths so the rounded values keep the (integral) total."""
    tenths = {key: value * 10.0 for key, value in values.items()}
    floors = {key: math.floor(value) for key, value in tenths.items()}
    missing = max(0, round(sum(tenths.values())) - sum(floors.values()))
    by_remainder = sorted(tenths, key=lambda key: (-(tenths[key] - floors[key]), key))
    for key in by_remainder[:missing]:
        floors[key] += 1
    ordered = sorted(floors, key=lambda key: (-floors[key], key))
    return {key: round(floors[key] / 10.0, 1) for key in ordered}
