"""Process graph builder.

Turns process and flow records into the technology matrix ``A``
(reference products × processes) and the intervention matrix ``B``
(elementary flows × processes). Processes and elementary flows are indexed
by sorted identity so identical inputs always yield identical matrices.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from lca_engine.core.logging import get_logger
from lca_engine.modules.assessment.errors import (
    AmbiguousReferenceError,
    UnresolvedFlowError,
)
from lca_engine.modules.assessment.schemas import Exchange, Flow, Process

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProcessGraph:
    """Indexed, read-only matrix form of a process network."""

    technology: np.ndarray
    intervention: np.ndarray
    flow_index: dict[str, int]
    process_index: dict[str, int]
    product_index: dict[str, int]
    processes: tuple[Process, ...]
    flows: dict[str, Flow]

    @property
    def process_ids(self) -> list[str]:
        return [p.id for p in self.processes]

    @property
    def elementary_flow_ids(self) -> list[str]:
        return sorted(self.flow_index, key=self.flow_index.__getitem__)

    def phase_of(self) -> dict[str, str]:
        return {p.id: p.phase for p in self.processes}


def build_process_graph(
    processes: Iterable[Process],
    flows: Iterable[Flow],
) -> ProcessGraph:
    """Build the technology and intervention matrices for a process network.

    Raises:
        AmbiguousReferenceError: A process has no usable single reference
            output, or two processes claim the same reference product.
        UnresolvedFlowError: An input flow is neither supplied by a process
            nor declared elementary.
    """
    flow_map = {f.id: f for f in flows}
    ordered = tuple(sorted(processes, key=lambda p: p.id))

    process_index: dict[str, int] = {}
    product_index: dict[str, int] = {}
    reference_amount: list[float] = []

    for j, process in enumerate(ordered):
        if process.id in process_index:
            raise AmbiguousReferenceError(
                f"Process '{process.id}' is declared more than once",
                process_id=process.id,
            )
        process_index[process.id] = j
        reference = _reference_exchange(process, flow_map)
        if reference.flow_id in product_index:
            other = ordered[product_index[reference.flow_id]].id
            raise AmbiguousReferenceError(
                f"Product flow '{reference.flow_id}' is the reference output of both "
                f"'{other}' and '{process.id}'",
                flow_id=reference.flow_id,
                process_id=process.id,
            )
        product_index[reference.flow_id] = j
        reference_amount.append(reference.quantity)

    elementary_ids = sorted(
        {
            e.flow_id
            for p in ordered
            for e in p.exchanges
            if e.flow_id in flow_map and flow_map[e.flow_id].kind == "elementary"
        }
    )
    flow_index = {flow_id: k for k, flow_id in enumerate(elementary_ids)}

    n = len(ordered)
    technology = np.zeros((n, n), dtype=float)
    intervention = np.zeros((len(flow_index), n), dtype=float)

    for j, process in enumerate(ordered):
        scale = reference_amount[j]
        for exchange in process.exchanges:
            flow = flow_map.get(exchange.flow_id)
            if flow is not None and flow.kind == "elementary":
                intervention[flow_index[flow.id], j] += exchange.quantity / scale
                continue

            row = product_index.get(exchange.flow_id)
            if row is None:
                if exchange.role == "input":
                    raise UnresolvedFlowError(
                        f"Input flow '{exchange.flow_id}' of process '{process.id}' has no "
                        "supplying process and is not declared elementary",
                        flow_id=exchange.flow_id,
                        process_id=process.id,
                    )
                logger.debug(
                    "unlinked_coproduct_dropped",
                    process_id=process.id,
                    flow_id=exchange.flow_id,
                )
                continue

            sign = 1.0 if exchange.role == "output" else -1.0
            technology[row, j] += sign * exchange.quantity / scale

    technology.flags.writeable = False
    intervention.flags.writeable = False

    logger.debug(
        "process_graph_built",
        processes=n,
        elementary_flows=len(flow_index),
    )

    return ProcessGraph(
        technology=technology,
        intervention=intervention,
        flow_index=flow_index,
        process_index=process_index,
        product_index=product_index,
        processes=ordered,
        flows=flow_map,
    )


def _reference_exchange(process: Process, flow_map: dict[str, Flow]) -> Exchange:
    references = process.reference_exchanges
    if len(references) != 1:
        raise AmbiguousReferenceError(
            f"Process '{process.id}' declares {len(references)} reference outputs; "
            "exactly one is required",
            process_id=process.id,
        )
    reference = references[0]
    problem: str | None = None
    flow = flow_map.get(reference.flow_id)
    if reference.role != "output":
        problem = "is an input"
    elif flow is not None and flow.kind != "product":
        problem = "is not a product flow"
    elif reference.quantity == 0.0:
        problem = "has zero quantity"
    if problem is not None:
        raise AmbiguousReferenceError(
            f"Reference exchange '{reference.flow_id}' of process '{process.id}' {problem}",
            flow_id=reference.flow_id,
            process_id=process.id,
        )
    return reference
