"""Error and warning taxonomy for assessment runs.

Fatal errors derive from ``AssessmentError`` and abort the run that raised
them. Non-fatal conditions derive from ``AssessmentWarning``; they are never
raised by the engine, only collected and returned next to the result.
"""

from __future__ import annotations

from lca_engine.modules.assessment.schemas import WarningRecord


class AssessmentError(ValueError):
    """Base class for errors that abort an assessment run."""

    code = "assessment_error"

    def __init__(
        self,
        message: str,
        *,
        flow_id: str | None = None,
        process_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.flow_id = flow_id
        self.process_id = process_id

    def to_detail(self) -> dict[str, str | None]:
        """Return a JSON-friendly description for API error bodies."""
        return {
            "code": self.code,
            "message": str(self),
            "flow_id": self.flow_id,
            "process_id": self.process_id,
        }


class UnresolvedFlowError(AssessmentError):
    """An input flow has no supplier in the network and is not elementary."""

    code = "unresolved_flow"


class AmbiguousReferenceError(AssessmentError):
    """A process does not declare exactly one usable reference output."""

    code = "ambiguous_reference"


class SingularSystemError(AssessmentError):
    """The technology matrix cannot be inverted for the requested demand."""

    code = "singular_system"


class SolveTimeoutError(AssessmentError, TimeoutError):
    """A linear solve did not finish within its time bound."""

    code = "solve_timeout"


class ZeroDemandError(AssessmentError):
    """The functional unit quantity is below the solver's zero tolerance."""

    code = "zero_demand"


class UnknownMethodError(AssessmentError):
    """No characterization factor set is registered under the given name."""

    code = "unknown_method"


class InvalidCandidateError(AssessmentError):
    """An improvement candidate cannot be applied to the baseline inventory."""

    code = "invalid_candidate"


# ---------------------------------------------------------------------------
# Non-fatal warnings
# ---------------------------------------------------------------------------


class AssessmentWarning(UserWarning):
    """Base class for partial-data caveats attached to a result."""

    code = "assessment_warning"

    def __init__(
        self,
        message: str,
        *,
        flow_id: str | None = None,
        process_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.flow_id = flow_id
        self.process_id = process_id

    def to_record(self) -> WarningRecord:
        return WarningRecord(
            code=self.code,
            message=str(self),
            flow_id=self.flow_id,
            process_id=self.process_id,
        )


class DisconnectedProcessError(AssessmentWarning):
    """A process is reachable by no path from the functional unit."""

    code = "disconnected_process"


class MissingFactorWarning(AssessmentWarning):
    """An elementary flow has no characterization factor in the method."""

    code = "missing_factor"
