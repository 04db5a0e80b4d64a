"""Impact calculator: applies characterization factors to a solved system."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from lca_engine.core.logging import get_logger
from lca_engine.modules.assessment.errors import MissingFactorWarning
from lca_engine.modules.assessment.graph import ProcessGraph
from lca_engine.modules.assessment.schemas import CharacterizationFactorSet, ImpactResult
from lca_engine.modules.assessment.solver import ActivityVector

logger = get_logger(__name__)


@dataclass(frozen=True)
class Characterization:
    """Category results of one run plus the flows that had no factor."""

    results: dict[str, ImpactResult]
    inventory: dict[str, float]
    warnings: tuple[MissingFactorWarning, ...] = ()


def characterize(
    activity: ActivityVector,
    graph: ProcessGraph,
    factor_set: CharacterizationFactorSet,
) -> Characterization:
    """Compute category scores and per-process contributions.

    Elementary flows without a factor in *factor_set* contribute zero and
    are reported as ``MissingFactorWarning``. Scores are not clamped:
    credits may drive a category negative.
    """
    if tuple(activity.process_ids) != tuple(graph.process_ids):
        raise ValueError("activity vector does not belong to this process graph")

    flow_ids = graph.elementary_flow_ids
    categories = factor_set.category_names()
    category_row = {name: i for i, name in enumerate(categories)}

    levels = activity.levels
    inventory = graph.intervention @ levels

    q = np.zeros((len(categories), len(flow_ids)), dtype=float)
    warnings: list[MissingFactorWarning] = []
    for k, flow_id in enumerate(flow_ids):
        factors = factor_set.factors_for(graph.flows[flow_id])
        if factors is None:
            logger.warning(
                "missing_characterization_factor",
                method=factor_set.method,
                flow_id=flow_id,
                exchanged=float(inventory[k]),
            )
            warnings.append(
                MissingFactorWarning(
                    f"No {factor_set.method} characterization factor for elementary flow "
                    f"'{flow_id}'; it contributes zero",
                    flow_id=flow_id,
                )
            )
            continue
        for cf in factors:
            q[category_row[cf.category], k] += cf.factor

    scores = q @ inventory
    # categories × processes
    per_process = q @ (graph.intervention * levels)

    active = [
        (j, pid) for j, pid in enumerate(activity.process_ids) if pid not in activity.excluded
    ]
    results = {
        name: ImpactResult(
            category=name,
            unit=factor_set.unit_of(name),
            value=float(scores[c]),
            contributions={pid: float(per_process[c, j]) for j, pid in active},
        )
        for c, name in enumerate(categories)
    }

    return Characterization(
        results=results,
        inventory={flow_id: float(inventory[k]) for k, flow_id in enumerate(flow_ids)},
        warnings=tuple(warnings),
    )
