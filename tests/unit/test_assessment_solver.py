"""Unit tests for the activity-level solver."""

from __future__ import annotations

import threading

import numpy as np
import pytest

import lca_engine.modules.assessment.solver as solver_module
from conftest import make_flow, make_process
from lca_engine.modules.assessment.errors import (
    AssessmentError,
    DisconnectedProcessError,
    SingularSystemError,
    SolveTimeoutError,
    UnresolvedFlowError,
    ZeroDemandError,
)
from lca_engine.modules.assessment.graph import build_process_graph
from lca_engine.modules.assessment.schemas import Flow, FunctionalUnit, Process
from lca_engine.modules.assessment.solver import build_demand_vector, solve, solve_graph


def _random_network(seed: int, size: int, magnitude: float = 1.0) -> np.ndarray:
    """Technology matrix ``I - M`` with column sums of ``M`` below one (always invertible).

    *magnitude* re-expresses each product in its own unit (g vs t, kWh vs MJ),
    which spreads exchange quantities over that many orders of ten without
    changing the diagonal.
    """
    rng = np.random.default_rng(seed)
    m = rng.uniform(0.0, 1.0, size=(size, size))
    m[rng.uniform(size=(size, size)) < 0.5] = 0.0
    np.fill_diagonal(m, 0.0)
    col_sums = m.sum(axis=0)
    m = m / np.maximum(col_sums / 0.9, 1.0)
    units = magnitude ** rng.uniform(0.0, 1.0, size=size)
    return (np.eye(size) - m) * units[:, None] / units[None, :]


# ---------------------------------------------------------------------------
# Solving
# ---------------------------------------------------------------------------


class TestSolve:
    def test_refinery_activity_levels(
        self,
        refinery_processes: list[Process],
        refinery_flows: list[Flow],
        fuel_unit: FunctionalUnit,
    ) -> None:
        graph = build_process_graph(refinery_processes, refinery_flows)

        activity = solve_graph(graph, fuel_unit)

        assert activity.as_dict() == pytest.approx({"extraction": 1.2, "refining": 1.0})
        assert activity.warnings == ()

    @pytest.mark.parametrize("magnitude", [1.0, 1e3, 1e5])
    @pytest.mark.parametrize("seed", range(6))
    def test_resubstitution_reproduces_demand(self, seed: int, magnitude: float) -> None:
        technology = _random_network(seed, size=6, magnitude=magnitude)
        demand = np.zeros(6)
        demand[seed % 6] = 3.5

        activity = solve(technology, demand)

        included = [i for i, pid in enumerate(activity.process_ids) if pid not in activity.excluded]
        residual = technology @ activity.levels - demand
        scale = np.linalg.norm(technology, np.inf) * np.max(np.abs(activity.levels)) + 3.5
        assert np.max(np.abs(residual[included])) <= 1e-9 * scale

    def test_large_input_quantity_is_not_singular(self) -> None:
        flows = [make_flow("car"), make_flow("power")]
        processes = [
            make_process("assembly", "car", inputs={"power": 5.0e4}),
            make_process("grid", "power"),
        ]
        graph = build_process_graph(processes, flows)

        activity = solve_graph(graph, FunctionalUnit(flow_id="car"))

        assert activity.as_dict() == pytest.approx({"assembly": 1.0, "grid": 5.0e4})

    def test_million_fold_supply_chain(self) -> None:
        technology = np.array([[1.0, 0.0, 0.0], [-1.0e3, 1.0, 0.0], [0.0, -1.0e3, 1.0]])

        activity = solve(technology, np.array([1.0, 0.0, 0.0]), timeout=5.0)

        assert activity.levels == pytest.approx([1.0, 1.0e3, 1.0e6])

    def test_recycling_loop_is_solved_algebraically(self) -> None:
        flows = [make_flow("aluminium"), make_flow("scrap")]
        processes = [
            make_process("casting", "aluminium", inputs={"scrap": 0.5}),
            make_process("remelting", "scrap", inputs={"aluminium": 0.2}),
        ]
        graph = build_process_graph(processes, flows)

        activity = solve_graph(graph, FunctionalUnit(flow_id="aluminium"))

        levels = activity.as_dict()
        assert levels["casting"] == pytest.approx(1.0 / 0.9)
        assert levels["remelting"] == pytest.approx(0.5 / 0.9)

    def test_activity_vector_is_read_only(
        self,
        refinery_processes: list[Process],
        refinery_flows: list[Flow],
        fuel_unit: FunctionalUnit,
    ) -> None:
        graph = build_process_graph(refinery_processes, refinery_flows)
        activity = solve_graph(graph, fuel_unit)

        with pytest.raises(ValueError):
            activity.levels[0] = 0.0

    def test_unknown_functional_unit_flow(
        self, refinery_processes: list[Process], refinery_flows: list[Flow]
    ) -> None:
        graph = build_process_graph(refinery_processes, refinery_flows)

        with pytest.raises(UnresolvedFlowError) as exc_info:
            build_demand_vector(graph, FunctionalUnit(flow_id="gasoline"))

        assert exc_info.value.flow_id == "gasoline"

    def test_zero_demand_rejected(self) -> None:
        with pytest.raises(ZeroDemandError, match="demand vector is zero") as exc_info:
            solve(np.eye(2), np.zeros(2))

        assert exc_info.value.code == "zero_demand"

    def test_demand_below_tolerance_is_an_assessment_error(
        self,
        refinery_processes: list[Process],
        refinery_flows: list[Flow],
    ) -> None:
        graph = build_process_graph(refinery_processes, refinery_flows)

        with pytest.raises(AssessmentError) as exc_info:
            solve_graph(graph, FunctionalUnit(flow_id="fuel", quantity=1e-12))

        assert isinstance(exc_info.value, ZeroDemandError)

    def test_shape_mismatch_rejected(self) -> None:
        with pytest.raises(ValueError, match="do not line up"):
            solve(np.eye(2), np.ones(3))


# ---------------------------------------------------------------------------
# Disconnected processes
# ---------------------------------------------------------------------------


class TestDisconnected:
    def test_dangling_process_excluded_with_warning(
        self,
        refinery_processes: list[Process],
        refinery_flows: list[Flow],
        fuel_unit: FunctionalUnit,
    ) -> None:
        processes = [*refinery_processes, make_process("crating", "crate", phase="Distribution")]
        flows = [*refinery_flows, make_flow("crate")]
        graph = build_process_graph(processes, flows)

        activity = solve_graph(graph, fuel_unit)

        assert activity.excluded == frozenset({"crating"})
        assert activity.as_dict()["crating"] == 0.0
        assert len(activity.warnings) == 1
        warning = activity.warnings[0]
        assert isinstance(warning, DisconnectedProcessError)
        assert warning.process_id == "crating"
        assert warning.to_record().code == "disconnected_process"

    def test_entries_below_tolerance_do_not_connect(self) -> None:
        technology = np.array([[1.0, 0.0], [-1e-12, 1.0]])
        activity = solve(technology, np.array([1.0, 0.0]), process_ids=["a", "b"])

        assert activity.excluded == frozenset({"b"})


# ---------------------------------------------------------------------------
# Singular systems
# ---------------------------------------------------------------------------


class TestSingular:
    def test_two_process_cycle_without_net_reference(self) -> None:
        flows = [make_flow("x"), make_flow("y")]
        processes = [
            make_process("p1", "x", inputs={"y": 1.0}),
            make_process("p2", "y", inputs={"x": 1.0}),
        ]
        graph = build_process_graph(processes, flows)

        with pytest.raises(SingularSystemError) as exc_info:
            solve_graph(graph, FunctionalUnit(flow_id="x"))

        assert exc_info.value.process_id in {"p1", "p2"}
        assert "system singular" in str(exc_info.value)

    def test_zero_matrix_reports_generic_singularity(self) -> None:
        with pytest.raises(SingularSystemError) as exc_info:
            solve(np.zeros((1, 1)), np.ones(1))

        assert str(exc_info.value) == "system singular"
        assert exc_info.value.process_id is None

    def test_empty_network(self) -> None:
        with pytest.raises(SingularSystemError):
            solve(np.zeros((0, 0)), np.zeros(0))


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


class TestTimeout:
    def test_slow_solve_times_out_without_blocking_other_runs(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        release = threading.Event()
        real_solve = solver_module._solve_system

        def _blocked(*args: object, **kwargs: object) -> object:
            release.wait(timeout=5.0)
            return real_solve(*args, **kwargs)  # type: ignore[arg-type]

        monkeypatch.setattr(solver_module, "_solve_system", _blocked)
        try:
            with pytest.raises(SolveTimeoutError) as exc_info:
                solve(np.eye(2), np.array([1.0, 0.0]), timeout=0.05)
            assert isinstance(exc_info.value, TimeoutError)
            assert exc_info.value.code == "solve_timeout"
        finally:
            monkeypatch.setattr(solver_module, "_solve_system", real_solve)
            release.set()

        activity = solve(np.eye(2), np.array([1.0, 0.0]), timeout=5.0)
        assert activity.levels[0] == pytest.approx(1.0)

    def test_no_timeout_solves_inline(self) -> None:
        activity = solve(np.eye(1), np.array([2.0]), timeout=None)

        assert activity.levels[0] == pytest.approx(2.0)

    def test_abandoned_solves_do_not_starve_later_runs(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        release = threading.Event()
        lock = threading.Lock()
        calls = {"count": 0}
        real_solve = solver_module._solve_system

        def _first_four_block(*args: object, **kwargs: object) -> object:
            with lock:
                calls["count"] += 1
                blocked = calls["count"] <= 4
            if blocked:
                release.wait(timeout=10.0)
            return real_solve(*args, **kwargs)  # type: ignore[arg-type]

        monkeypatch.setattr(solver_module, "_solve_system", _first_four_block)
        try:
            for _ in range(4):
                with pytest.raises(SolveTimeoutError):
                    solve(np.eye(2), np.array([1.0, 0.0]), timeout=0.05)

            activity = solve(np.eye(2), np.array([1.0, 0.0]), timeout=2.0)
        finally:
            release.set()

        assert activity.levels[0] == pytest.approx(1.0)
        assert calls["count"] == 5
