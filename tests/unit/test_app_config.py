"""Unit tests for settings validation and the application factory."""

from __future__ import annotations

import pytest
import structlog
from httpx import ASGITransport, AsyncClient
from pydantic import ValidationError

import lca_engine.modules.assessment.service as assessment_service_module
from lca_engine.core.config import Settings, get_settings
from lca_engine.core.logging import assessment_context
from lca_engine.modules.assessment.engine import AssessmentEngine


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.lca_default_method == "ReCiPe"
        assert settings.lca_zero_tolerance == 1e-9
        assert settings.lca_priority_high_threshold == 0.15
        assert settings.lca_priority_medium_threshold == 0.05

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LCA_DEFAULT_METHOD", "TRACI")
        monkeypatch.setenv("LCA_SOLVE_TIMEOUT_SECONDS", "2.5")

        settings = get_settings()

        assert settings.lca_default_method == "TRACI"
        assert settings.lca_solve_timeout_seconds == 2.5

    def test_medium_threshold_above_high_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not exceed"):
            Settings(lca_priority_high_threshold=0.1, lca_priority_medium_threshold=0.2)

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must be positive"):
            Settings(lca_solve_timeout_seconds=0)

    def test_debug_forbidden_in_production(self) -> None:
        with pytest.raises(ValidationError, match="debug must be False"):
            Settings(environment="production", debug=True)


@pytest.mark.asyncio
async def test_health_lists_methods(
    engine: AssessmentEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(assessment_service_module, "_engine", engine)
    from lca_engine.main import create_application

    app = create_application()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "methods": ["CML", "ILCD", "ReCiPe", "TRACI"]}


@pytest.mark.asyncio
async def test_assessment_routes_mounted_under_api_prefix(
    engine: AssessmentEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(assessment_service_module, "_engine", engine)
    from lca_engine.main import create_application

    app = create_application()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/v1/assessments/methods")

    assert response.status_code == 200


def test_assessment_context_binds_and_clears() -> None:
    with assessment_context(method="ReCiPe", candidate_id="c-1"):
        bound = structlog.contextvars.get_contextvars()
        assert bound["method"] == "ReCiPe"
        assert bound["candidate_id"] == "c-1"

    assert "candidate_id" not in structlog.contextvars.get_contextvars()
