"""Linear system solver for activity levels.

Solves ``A · s = f`` restricted to the processes reachable from the
functional unit. Unreachable processes are excluded with a warning; a rank
deficient reduced system raises ``SingularSystemError``.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field

import numpy as np
import scipy.linalg
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import breadth_first_order

from lca_engine.core.logging import get_logger
from lca_engine.modules.assessment.errors import (
    DisconnectedProcessError,
    SingularSystemError,
    SolveTimeoutError,
    UnresolvedFlowError,
    ZeroDemandError,
)
from lca_engine.modules.assessment.graph import ProcessGraph
from lca_engine.modules.assessment.schemas import FunctionalUnit

logger = get_logger(__name__)

DEFAULT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class ActivityVector:
    """Scaling factor per process; read-only once solved."""

    levels: np.ndarray
    process_ids: tuple[str, ...]
    excluded: frozenset[str] = frozenset()
    warnings: tuple[DisconnectedProcessError, ...] = field(default=())

    def as_dict(self) -> dict[str, float]:
        return {pid: float(level) for pid, level in zip(self.process_ids, self.levels)}


def _submit(
    technology: np.ndarray,
    demand: np.ndarray,
    process_ids: tuple[str, ...],
    tolerance: float,
) -> Future[ActivityVector]:
    """Run one solve on its own daemon thread.

    Each bounded solve gets a fresh thread, so a stuck solve never holds a
    worker that a later run would queue behind.
    """
    future: Future[ActivityVector] = Future()

    def _work() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(_solve_system(technology, demand, process_ids, tolerance))
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)

    threading.Thread(target=_work, name="lca-solve", daemon=True).start()
    return future


def build_demand_vector(graph: ProcessGraph, functional_unit: FunctionalUnit) -> np.ndarray:
    """Return ``f``: zero except at the process supplying the functional unit."""
    row = graph.product_index.get(functional_unit.flow_id)
    if row is None:
        raise UnresolvedFlowError(
            f"Functional unit flow '{functional_unit.flow_id}' is not the reference "
            "output of any process",
            flow_id=functional_unit.flow_id,
        )
    demand = np.zeros(len(graph.processes), dtype=float)
    demand[row] = functional_unit.quantity
    return demand


def solve(
    technology: np.ndarray,
    demand: np.ndarray,
    *,
    process_ids: Sequence[str] | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
    timeout: float | None = None,
) -> ActivityVector:
    """Solve the technology matrix for the activity vector meeting *demand*.

    When *timeout* is given the solve runs on a thread of its own and
    ``SolveTimeoutError`` is raised if it has not finished in time. The
    abandoned computation keeps running but its result is discarded; it
    touches no state shared with other runs.
    """
    ids = tuple(process_ids) if process_ids is not None else tuple(
        str(i) for i in range(np.shape(technology)[0])
    )
    if timeout is None:
        return _solve_system(technology, demand, ids, tolerance)

    future = _submit(technology, demand, ids, tolerance)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        logger.warning("solve_timeout", timeout_seconds=timeout, processes=len(ids))
        raise SolveTimeoutError(f"Linear solve did not finish within {timeout:g}s") from exc


def solve_graph(
    graph: ProcessGraph,
    functional_unit: FunctionalUnit,
    *,
    tolerance: float = DEFAULT_TOLERANCE,
    timeout: float | None = None,
) -> ActivityVector:
    """Convenience wrapper: build ``f`` for *functional_unit* and solve."""
    demand = build_demand_vector(graph, functional_unit)
    return solve(
        graph.technology,
        demand,
        process_ids=graph.process_ids,
        tolerance=tolerance,
        timeout=timeout,
    )


def _solve_system(
    technology: np.ndarray,
    demand: np.ndarray,
    process_ids: tuple[str, ...],
    tolerance: float,
) -> ActivityVector:
    a = np.asarray(technology, dtype=float)
    f = np.asarray(demand, dtype=float)
    n = a.shape[0] if a.ndim == 2 else 0
    if a.ndim != 2 or a.shape != (n, n) or f.shape != (n,) or len(process_ids) != n:
        raise ValueError(
            f"technology matrix {a.shape}, demand {f.shape} and {len(process_ids)} "
            "process ids do not line up"
        )
    if n == 0:
        raise SingularSystemError("system singular: the process network is empty")

    clean = np.where(np.abs(a) < tolerance, 0.0, a)
    seeds = np.flatnonzero(np.abs(f) >= tolerance)
    if seeds.size == 0:
        raise ZeroDemandError("demand vector is zero; nothing to solve for")

    reached = _reachable(clean, seeds)
    warnings: list[DisconnectedProcessError] = []
    reached_set = set(reached.tolist())
    for idx in range(n):
        if idx not in reached_set:
            pid = process_ids[idx]
            logger.warning("disconnected_process_excluded", process_id=pid)
            warnings.append(
                DisconnectedProcessError(
                    f"Process '{pid}' is not reachable from the functional unit "
                    "and was excluded",
                    process_id=pid,
                )
            )

    sub = clean[np.ix_(reached, reached)]
    rhs = f[reached]

    _check_rank(sub, reached, process_ids)

    try:
        partial = np.linalg.solve(sub, rhs)
    except np.linalg.LinAlgError as exc:
        raise SingularSystemError("system singular") from exc

    if not np.all(np.isfinite(partial)):
        raise SingularSystemError("system singular")
    residual = np.max(np.abs(sub @ partial - rhs))
    scale = np.linalg.norm(sub, np.inf) * np.max(np.abs(partial)) + np.max(np.abs(rhs))
    if residual > tolerance * scale:
        raise SingularSystemError("system singular")

    levels = np.zeros(n, dtype=float)
    levels[reached] = partial
    levels.flags.writeable = False

    return ActivityVector(
        levels=levels,
        process_ids=process_ids,
        excluded=frozenset(process_ids[i] for i in range(n) if i not in reached_set),
        warnings=tuple(warnings),
    )


def _reachable(clean: np.ndarray, seeds: np.ndarray) -> np.ndarray:
    """Indices of processes on some supply path from the demanded processes.

    Process ``j`` leads to ``i`` when ``A[i][j]`` is nonzero, i.e. ``j``
    exchanges ``i``'s reference product.
    """
    adjacency = (clean != 0.0).T.astype(np.int8)
    np.fill_diagonal(adjacency, 0)
    graph = csr_matrix(adjacency)
    found: set[int] = set()
    for seed in seeds:
        if int(seed) in found:
            continue
        order = breadth_first_order(graph, int(seed), directed=True, return_predecessors=False)
        found.update(int(i) for i in order)
    return np.array(sorted(found), dtype=int)


def _check_rank(
    sub: np.ndarray,
    reached: np.ndarray,
    process_ids: tuple[str, ...],
) -> None:
    """Raise ``SingularSystemError`` naming a dependent process if rank deficient.

    Rank uses the ``numpy.linalg.matrix_rank`` cutoff (machine epsilon
    relative to the largest singular value), independent of the entry
    tolerance. The pivoted QR order names the first column that adds no new
    direction.
    """
    _, r, pivots = scipy.linalg.qr(sub, pivoting=True)
    diag = np.abs(np.diag(r))
    if diag.size == 0 or diag[0] == 0.0:
        raise SingularSystemError("system singular")
    rank = int(np.linalg.matrix_rank(sub))
    if rank < sub.shape[0]:
        offender = process_ids[int(reached[pivots[rank]])]
        raise SingularSystemError(
            f"system singular: activity of process '{offender}' is not determined "
            "by the technology matrix",
            process_id=offender,
        )
