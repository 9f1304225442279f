from __future__ import annotations

from typing import Optional

import pytest

from src.telecare.domain.models.soap_report import SOAPReport
from src.telecare.infra.db import inmemory as repos
from src.telecare.infra.db.inmemory import (
    InMemoryAccountRepository,
    InMemoryClinicalSessionRepository,
    InMemoryReportRepository,
)
from src.telecare.services.drafting.backends import DemoDraftingBackend
from src.telecare.services.drafting.service import ReportDraftingService
from src.telecare.services.regeneration.agent import RegenerationAgent
from src.telecare.services.review.state_machine import ReportReviewService
from tests.telecare.factories import HEADACHE_TRANSCRIPT, RecordingBackend


@pytest.fixture(autouse=True)
def fresh_repositories(monkeypatch):
    """Give every test empty in-memory repositories."""

    monkeypatch.setattr(repos, "account_repository", InMemoryAccountRepository())
    monkeypatch.setattr(repos, "clinical_session_repository", InMemoryClinicalSessionRepository())
    monkeypatch.setattr(repos, "report_repository", InMemoryReportRepository())


@pytest.fixture
def drafted_report():
    """Create a clinical session for ``patient_id`` and draft its report."""

    service = ReportDraftingService(backend=DemoDraftingBackend())

    def _draft(patient_id: str = "patient-1", transcript=None, summary: str = "Headache and dizziness") -> SOAPReport:
        session = service.create_session(
            patient_id=patient_id,
            transcript=transcript if transcript is not None else HEADACHE_TRANSCRIPT,
            summary=summary,
        )
        return service.draft_report(session.id)

    return _draft


@pytest.fixture
def recording_backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def review_service_with():
    """Build a review service whose regeneration agent uses ``backend``."""

    def _build(backend=None, timeout: Optional[float] = 2.0) -> ReportReviewService:
        agent = RegenerationAgent(backend=backend or DemoDraftingBackend(), timeout=timeout)
        return ReportReviewService(regeneration_agent=agent)

    return _build
