from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from src.telecare.config import settings
from src.telecare.domain.models.clinical_session import ClinicalSession, InterviewTurn
from src.telecare.domain.models.soap_report import ReviewStatus, SOAPReport
from src.telecare.errors import Conflict, NotFound
from src.telecare.infra.db import inmemory as repos
from src.telecare.infra.db.repositories import ClinicalSessionRepository, ReportRepository
from src.telecare.services.drafting.backends import (
    DraftingBackend,
    DraftingContext,
    get_drafting_backend_from_env,
)
from src.telecare.services.drafting.runner import run_draft
from src.telecare.services.triage.classifier import classify

logger = logging.getLogger("drafting")


class ReportDraftingService:
    """Creates clinical sessions from completed intakes and drafts their reports.

    A report is drafted exactly once per session and starts in ``pending``;
    afterwards it only changes through the review workflow.
    """

    def __init__(
        self,
        *,
        session_repository: ClinicalSessionRepository | None = None,
        report_repository: ReportRepository | None = None,
        backend: DraftingBackend | None = None,
        timeout: float | None = None,
    ) -> None:
        self._session_repository = session_repository
        self._report_repository = report_repository
        self._backend: DraftingBackend = backend or get_drafting_backend_from_env()
        self._timeout = timeout

    @property
    def sessions(self) -> ClinicalSessionRepository:
        return self._session_repository or repos.clinical_session_repository

    @property
    def reports(self) -> ReportRepository:
        return self._report_repository or repos.report_repository

    def create_session(
        self,
        *,
        patient_id: str,
        transcript: List[InterviewTurn],
        summary: str = "",
        chief_complaint: Optional[str] = None,
    ) -> ClinicalSession:
        session = ClinicalSession(
            id=uuid4(),
            patient_id=patient_id,
            chief_complaint=chief_complaint,
            summary=summary,
            transcript=transcript,
            created_at=datetime.now(timezone.utc),
        )
        self.sessions.add(session)
        return session

    def draft_report(self, session_id: UUID) -> SOAPReport:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFound("Clinical session not found")
        if self.reports.get_by_session(session_id) is not None:
            raise Conflict("A report has already been drafted for this session")

        context = DraftingContext(
            transcript=session.transcript_text(),
            summary=session.summary,
            chief_complaint=session.chief_complaint,
        )
        timeout = self._timeout if self._timeout is not None else settings.drafting_timeout_seconds
        sections = run_draft(self._backend, context, timeout=timeout)
        triage = classify(sections)

        now = datetime.now(timezone.utc)
        report = SOAPReport(
            id=uuid4(),
            session_id=session.id,
            patient_id=session.patient_id,
            subjective=sections.subjective,
            objective=sections.objective,
            assessment=sections.assessment,
            plan=sections.plan,
            department=triage.department,
            priority=triage.priority,
            triage_label=triage.triage_label,
            red_flags=triage.red_flags,
            review_status=ReviewStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        if not self.reports.add(report):
            raise Conflict("A report has already been drafted for this session")

        logger.info(
            "Drafted report %s for session %s (triage=%s, department=%s)",
            report.id,
            session.id,
            report.triage_label.value,
            report.department,
        )
        return report


drafting_service = ReportDraftingService()
