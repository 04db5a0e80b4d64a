"""Pydantic schemas for the impact assessment engine.

Inbound inventory records (flows, processes, functional unit) and factor
tables are frozen models; outbound results are plain models shaped for the
reporting layer.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

FlowKind = Literal["elementary", "product"]
ExchangeRole = Literal["input", "output"]
CandidateKind = Literal["substitution", "modification"]
Priority = Literal["high", "medium", "low", "regression"]
Trend = Literal["up", "down", "stable"]
Status = Literal["good", "warning", "neutral"]


# ---------------------------------------------------------------------------
# Inventory records
# ---------------------------------------------------------------------------


class Flow(BaseModel):
    """A product or elementary flow from the inventory store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    unit: str
    kind: FlowKind
    compartment: str | None = Field(
        default=None,
        description="Environmental compartment (air, water, soil, resource) for elementary flows",
    )


class Exchange(BaseModel):
    """One ``(flow, quantity, role)`` line of a unit process."""

    model_config = ConfigDict(frozen=True)

    flow_id: str = Field(min_length=1)
    quantity: float
    role: ExchangeRole
    is_reference: bool = False


class Process(BaseModel):
    """A unit process with its exchanges per reference output."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    phase: str = Field(min_length=1, description="Lifecycle phase tag")
    unit: str
    exchanges: tuple[Exchange, ...] = ()
    data_quality: str | None = None
    source: str | None = None

    @property
    def reference_exchanges(self) -> list[Exchange]:
        return [e for e in self.exchanges if e.is_reference]


class FunctionalUnit(BaseModel):
    """The quantity of a product flow the assessed system must deliver."""

    model_config = ConfigDict(frozen=True)

    flow_id: str = Field(min_length=1)
    quantity: float = Field(default=1.0, gt=0.0)


# ---------------------------------------------------------------------------
# Characterization factor sets
# ---------------------------------------------------------------------------


class ImpactCategory(BaseModel):
    """An impact category of a method with its reporting unit."""

    model_config = ConfigDict(frozen=True)

    name: str
    unit: str


class CharacterizationFactor(BaseModel):
    """Coefficient converting one unit of a flow into a category score."""

    model_config = ConfigDict(frozen=True)

    category: str
    factor: float


class CharacterizationFactorSet(BaseModel):
    """All characterization factors of one impact-assessment method.

    ``factors`` is keyed by normalised flow key: either a flow id, a
    ``name|compartment`` pair, or a bare flow name.
    """

    model_config = ConfigDict(frozen=True)

    method: str
    version: str = "0.0"
    primary_category: str
    categories: tuple[ImpactCategory, ...]
    factors: dict[str, tuple[CharacterizationFactor, ...]] = Field(default_factory=dict)

    def category_names(self) -> list[str]:
        return [c.name for c in self.categories]

    def unit_of(self, category: str) -> str:
        for entry in self.categories:
            if entry.name == category:
                return entry.unit
        raise KeyError(category)

    def factors_for(self, flow: Flow) -> tuple[CharacterizationFactor, ...] | None:
        """Return the factors that apply to *flow*, or ``None`` if it is unknown.

        Identity match first, then name + compartment, then name alone.
        """
        name = normalise_flow_key(flow.name)
        keys = [normalise_flow_key(flow.id)]
        if flow.compartment:
            keys.append(f"{name}|{normalise_flow_key(flow.compartment)}")
        keys.append(name)
        for key in keys:
            found = self.factors.get(key)
            if found is not None:
                return found
        return None


def normalise_flow_key(value: str) -> str:
    return value.lower().strip().replace(" ", "_")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class WarningRecord(BaseModel):
    """Serializable form of a non-fatal assessment warning."""

    code: str
    message: str
    flow_id: str | None = None
    process_id: str | None = None


class ProcessContribution(BaseModel):
    """A single process's share of a category score."""

    process_id: str
    value: float
    share_percent: float | None = None


class ImpactResult(BaseModel):
    """Score of one impact category plus per-process contributions."""

    category: str
    unit: str
    value: float
    contributions: dict[str, float] = Field(default_factory=dict)

    def top_contributors(self, limit: int = 5) -> list[ProcessContribution]:
        """Processes ordered by absolute contribution, largest first."""
        ordered = sorted(
            self.contributions.items(),
            key=lambda item: (-abs(item[1]), item[0]),
        )
        return [
            ProcessContribution(
                process_id=process_id,
                value=value,
                share_percent=(round(value / self.value * 100.0, 1) if self.value else None),
            )
            for process_id, value in ordered[:limit]
        ]


class PhaseBreakdown(BaseModel):
    """Lifecycle phase → percentage of the category total."""

    category: str
    total: float
    percentages: dict[str, float] = Field(default_factory=dict)


class AssessmentResult(BaseModel):
    """Everything one assessment run produces."""

    method: str
    method_version: str
    functional_unit: FunctionalUnit
    headline_category: str
    activity: dict[str, float] = Field(default_factory=dict)
    impacts: dict[str, ImpactResult] = Field(default_factory=dict)
    phase_breakdown: PhaseBreakdown
    warnings: list[WarningRecord] = Field(default_factory=list)
    incomplete: bool = False

    @property
    def headline(self) -> ImpactResult:
        return self.impacts[self.headline_category]


class CategoryComparison(BaseModel):
    """One impact card: current value against a prior baseline."""

    category: str
    unit: str
    value: float
    prior_value: float | None = None
    change_percent: float | None = None
    trend: Trend = "stable"
    status: Status = "neutral"


# ---------------------------------------------------------------------------
# Improvement ranking
# ---------------------------------------------------------------------------


class ImprovementCandidate(BaseModel):
    """An alternative inventory to evaluate against the baseline.

    The candidate is applied to the baseline inventory: processes in
    ``replace_processes`` replace baseline processes with the same id,
    ``add_processes`` and ``add_flows`` extend it, ``remove_process_ids``
    drop processes.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str
    kind: CandidateKind = "substitution"
    description: str = ""
    replace_processes: tuple[Process, ...] = ()
    add_processes: tuple[Process, ...] = ()
    remove_process_ids: tuple[str, ...] = ()
    add_flows: tuple[Flow, ...] = ()


class RankedImprovement(BaseModel):
    """A ranked candidate with everything needed to render a saving."""

    rank: int
    candidate_id: str
    title: str
    kind: CandidateKind
    category: str
    unit: str
    baseline_value: float
    new_value: float
    absolute_delta: float
    relative_delta: float
    priority: Priority


class FailedCandidate(BaseModel):
    """A candidate whose evaluation run aborted."""

    candidate_id: str
    code: str
    message: str


class ImprovementReport(BaseModel):
    """Ranked improvements for one baseline and method."""

    method: str
    category: str
    unit: str
    baseline_value: float
    ranked: list[RankedImprovement] = Field(default_factory=list)
    failed: list[FailedCandidate] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------


class AssessmentRequest(BaseModel):
    """Request body for running an assessment."""

    processes: list[Process]
    flows: list[Flow]
    functional_unit: FunctionalUnit
    method: str | None = Field(
        default=None,
        description="Impact-assessment method. Defaults to config lca_default_method.",
    )
    headline_category: str | None = None
    prior_impacts: dict[str, float] | None = Field(
        default=None,
        description="Category values of a prior baseline for percentage-change reporting",
    )


class ImprovementRequest(AssessmentRequest):
    """Request body for ranking improvement candidates."""

    candidates: list[ImprovementCandidate] = Field(default_factory=list)


class AssessmentReport(BaseModel):
    """Assessment result plus optional comparison to a prior baseline."""

    result: AssessmentResult
    comparison: list[CategoryComparison] = Field(default_factory=list)


class MethodSummary(BaseModel):
    """Public description of a registered impact-assessment method."""

    name: str
    version: str
    primary_category: str
    categories: list[ImpactCategory]
    factor_count: int
