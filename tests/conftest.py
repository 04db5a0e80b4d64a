"""
Pytest fixtures for engine testing.
Provides inventory builders and a method registry loaded from the bundled factor sets.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from lca_engine.core.config import get_settings
from lca_engine.modules.assessment.engine import AssessmentEngine
from lca_engine.modules.assessment.methods.loader import MethodRegistry
from lca_engine.modules.assessment.schemas import Exchange, Flow, FunctionalUnit, Process


def make_flow(flow_id: str, kind: str = "product", **overrides: object) -> Flow:
    defaults: dict[str, object] = {
        "name": flow_id,
        "unit": "kg",
        "compartment": "air" if kind == "elementary" else None,
    }
    defaults.update(overrides)
    return Flow(id=flow_id, kind=kind, **defaults)  # type: ignore[arg-type]


def make_process(
    process_id: str,
    reference: str,
    *,
    phase: str = "Manufacturing",
    reference_quantity: float = 1.0,
    inputs: dict[str, float] | None = None,
    outputs: dict[str, float] | None = None,
) -> Process:
    """Build a process with one reference output plus extra exchanges."""
    exchanges = [
        Exchange(flow_id=reference, quantity=reference_quantity, role="output", is_reference=True)
    ]
    exchanges += [
        Exchange(flow_id=flow_id, quantity=qty, role="input")
        for flow_id, qty in (inputs or {}).items()
    ]
    exchanges += [
        Exchange(flow_id=flow_id, quantity=qty, role="output")
        for flow_id, qty in (outputs or {}).items()
    ]
    return Process(
        id=process_id,
        name=process_id.replace("-", " ").title(),
        phase=phase,
        unit="kg",
        exchanges=tuple(exchanges),
        data_quality="measured",
        source="unit-test",
    )


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Ensure each test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def registry() -> MethodRegistry:
    return MethodRegistry()


@pytest.fixture()
def engine(registry: MethodRegistry) -> AssessmentEngine:
    return AssessmentEngine(registry, solve_timeout=10.0, max_workers=2)


@pytest.fixture()
def refinery_flows() -> list[Flow]:
    return [
        make_flow("crude"),
        make_flow("fuel"),
        make_flow("co2", kind="elementary", name="carbon dioxide"),
    ]


@pytest.fixture()
def refinery_processes() -> list[Process]:
    """Extraction → Refining → fuel: the textbook two-step chain."""
    return [
        make_process(
            "refining",
            "fuel",
            phase="Manufacturing",
            inputs={"crude": 1.2},
            outputs={"co2": 2.0},
        ),
        make_process(
            "extraction",
            "crude",
            phase="Raw Material Extraction",
            outputs={"co2": 0.5},
        ),
    ]


@pytest.fixture()
def fuel_unit() -> FunctionalUnit:
    return FunctionalUnit(flow_id="fuel", quantity=1.0)
