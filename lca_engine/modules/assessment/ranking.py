"""Improvement ranking.

Candidates are alternative inventories re-evaluated through the full
pipeline; ranking itself is a pure function of the baseline and candidate
category results.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from lca_engine.modules.assessment.errors import InvalidCandidateError
from lca_engine.modules.assessment.schemas import (
    Flow,
    ImpactResult,
    ImprovementCandidate,
    Priority,
    Process,
    RankedImprovement,
)

# Deltas are compared at this precision so float noise cannot reorder ties
_SORT_DIGITS = 12


def apply_candidate(
    processes: Iterable[Process],
    flows: Iterable[Flow],
    candidate: ImprovementCandidate,
) -> tuple[list[Process], list[Flow]]:
    """Return the inventory that results from applying *candidate*."""
    by_id = {p.id: p for p in processes}

    for process_id in candidate.remove_process_ids:
        if by_id.pop(process_id, None) is None:
            raise InvalidCandidateError(
                f"Candidate '{candidate.id}' removes unknown process '{process_id}'",
                process_id=process_id,
            )
    for process in candidate.replace_processes:
        if process.id not in by_id:
            raise InvalidCandidateError(
                f"Candidate '{candidate.id}' replaces unknown process '{process.id}'",
                process_id=process.id,
            )
        by_id[process.id] = process
    for process in candidate.add_processes:
        if process.id in by_id:
            raise InvalidCandidateError(
                f"Candidate '{candidate.id}' adds process '{process.id}' which already exists",
                process_id=process.id,
            )
        by_id[process.id] = process

    flow_map = {f.id: f for f in flows}
    flow_map.update({f.id: f for f in candidate.add_flows})
    return list(by_id.values()), list(flow_map.values())


def rank(
    baseline: ImpactResult,
    evaluations: Sequence[tuple[ImprovementCandidate, ImpactResult]],
    *,
    high_threshold: float = 0.15,
    medium_threshold: float = 0.05,
) -> list[RankedImprovement]:
    """Order candidates by the reduction they achieve on *baseline*'s category.

    Largest absolute reduction first, then largest relative reduction, then
    candidate id. Candidates that increase the impact are kept and sort
    after every non-regressing candidate.
    """
    entries: list[RankedImprovement] = []
    for candidate, result in evaluations:
        if result.category != baseline.category:
            raise ValueError(
                f"Candidate '{candidate.id}' was evaluated on '{result.category}', "
                f"baseline is '{baseline.category}'"
            )
        absolute = baseline.value - result.value
        relative = absolute / abs(baseline.value) if baseline.value != 0.0 else 0.0
        entries.append(
            RankedImprovement(
                rank=0,
                candidate_id=candidate.id,
                title=candidate.title,
                kind=candidate.kind,
                category=baseline.category,
                unit=baseline.unit,
                baseline_value=baseline.value,
                new_value=result.value,
                absolute_delta=absolute,
                relative_delta=relative,
                priority=_priority(absolute, relative, high_threshold, medium_threshold),
            )
        )

    entries.sort(
        key=lambda e: (
            round(e.absolute_delta, _SORT_DIGITS) < 0,
            -round(e.absolute_delta, _SORT_DIGITS),
            -round(e.relative_delta, _SORT_DIGITS),
            e.candidate_id,
        )
    )
    return [e.model_copy(update={"rank": position}) for position, e in enumerate(entries, 1)]


def _priority(absolute: float, relative: float, high: float, medium: float) -> Priority:
    if round(absolute, _SORT_DIGITS) < 0:
        return "regression"
    if relative >= high:
        return "high"
    if relative >= medium:
        return "medium"
    return "low"
