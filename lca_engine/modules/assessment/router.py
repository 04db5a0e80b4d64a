"""API router for impact assessment endpoints.

The engine is CPU-bound and synchronous; handlers run it in a worker
thread so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException, status

from lca_engine.modules.assessment.errors import (
    AssessmentError,
    SolveTimeoutError,
    UnknownMethodError,
)
from lca_engine.modules.assessment.schemas import (
    AssessmentReport,
    AssessmentRequest,
    ImprovementReport,
    ImprovementRequest,
    MethodSummary,
)
from lca_engine.modules.assessment.service import AssessmentService

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(exc: ValueError) -> HTTPException:
    """Map engine errors onto HTTP status codes."""
    if isinstance(exc, SolveTimeoutError):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=exc.to_detail())
    if isinstance(exc, UnknownMethodError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail())
    if isinstance(exc, AssessmentError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.to_detail(),
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/methods", response_model=list[MethodSummary])
async def list_methods() -> list[MethodSummary]:
    """List the registered impact-assessment methods and their categories."""
    return AssessmentService().list_methods()


@router.post(
    "/assess",
    response_model=AssessmentReport,
    status_code=status.HTTP_200_OK,
)
async def assess(body: AssessmentRequest) -> AssessmentReport:
    """Compute category scores, activity levels and the phase breakdown.

    Structural inventory errors return 422 with the offending flow or
    process id; partial results are never returned for them.
    """
    service = AssessmentService()
    try:
        return await asyncio.to_thread(service.assess, body)
    except ValueError as exc:
        raise _http_error(exc) from exc


@router.post(
    "/improvements",
    response_model=ImprovementReport,
)
async def rank_improvements(body: ImprovementRequest) -> ImprovementReport:
    """Evaluate improvement candidates and rank them by impact reduction."""
    service = AssessmentService()
    try:
        return await asyncio.to_thread(service.rank_improvements, body)
    except ValueError as exc:
        raise _http_error(exc) from exc
