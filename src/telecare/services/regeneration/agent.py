from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from src.telecare.config import settings
from src.telecare.domain.models.review import ReviewOutcome
from src.telecare.domain.models.soap_report import ReviewAction, ReviewEntry, ReviewStatus, SOAPReport, SOAPSections
from src.telecare.errors import Conflict, RegenerationFailed
from src.telecare.infra.db import inmemory as repos
from src.telecare.infra.db.repositories import ClinicalSessionRepository, ReportRepository
from src.telecare.services.drafting.backends import (
    DraftingBackend,
    DraftingContext,
    get_drafting_backend_from_env,
)
from src.telecare.services.drafting.runner import run_draft
from src.telecare.services.triage.classifier import classify

logger = logging.getLogger("regeneration")

SECTION_NAMES = ("subjective", "objective", "assessment", "plan")


@dataclass(frozen=True)
class RegenerationRequest:
    doctor_id: str
    action: ReviewAction
    feedback: Optional[str] = None
    rejection_reason: Optional[str] = None
    star_rating: Optional[int] = None


class RegenerationAgent:
    """Turns doctor feedback into a revised draft of an existing report.

    The agent reads the report's clinical session (the provenance for every
    draft), asks the drafting model for a full replacement of the four
    sections, validates it, re-runs triage and commits everything in one
    conditional update that also returns the report to ``pending``.

    Nothing is written unless the model call succeeded and its output
    validated; on failure the report is exactly as the caller left it.
    """

    def __init__(
        self,
        *,
        report_repository: ReportRepository | None = None,
        session_repository: ClinicalSessionRepository | None = None,
        backend: DraftingBackend | None = None,
        timeout: float | None = None,
        rating_threshold: int | None = None,
    ) -> None:
        self._report_repository = report_repository
        self._session_repository = session_repository
        self._backend: DraftingBackend = backend or get_drafting_backend_from_env()
        self._timeout = timeout
        self._rating_threshold = rating_threshold

    @property
    def reports(self) -> ReportRepository:
        return self._report_repository or repos.report_repository

    @property
    def sessions(self) -> ClinicalSessionRepository:
        return self._session_repository or repos.clinical_session_repository

    @property
    def rating_threshold(self) -> int:
        if self._rating_threshold is not None:
            return self._rating_threshold
        return settings.regeneration_rating_threshold

    def should_regenerate(self, action: ReviewAction, star_rating: Optional[int]) -> bool:
        if action in {ReviewAction.REQUEST_CHANGES, ReviewAction.REGENERATE}:
            return True
        if action == ReviewAction.REJECT:
            return star_rating is not None and star_rating <= self.rating_threshold
        return False

    @staticmethod
    def unchanged_sections(report: SOAPReport, sections: SOAPSections) -> List[str]:
        """Names of the sections a regenerated draft failed to revise."""

        return [name for name in SECTION_NAMES if getattr(sections, name) == getattr(report, name)]

    def regenerate(self, report: SOAPReport, request: RegenerationRequest) -> ReviewOutcome:
        """Regenerate ``report`` and commit it back to ``pending``.

        ``report`` must be the snapshot the caller validated its transition
        against; the commit is conditional on its status and version.

        Raises RegenerationFailed when the model call errors, times out,
        returns an invalid draft or leaves any section unrevised, and Conflict
        when the report changed while the model was running.
        """

        session = self.sessions.get(report.session_id)
        if session is None:
            raise RegenerationFailed("Clinical session for this report is missing; cannot regenerate")

        context = DraftingContext(
            transcript=session.transcript_text(),
            summary=session.summary,
            chief_complaint=session.chief_complaint,
            prior_sections=report.sections(),
            feedback=request.feedback,
            rejection_reason=request.rejection_reason,
            star_rating=request.star_rating,
            revision=report.regeneration_count + 1,
        )
        timeout = self._timeout if self._timeout is not None else settings.drafting_timeout_seconds

        logger.info("Regenerating report %s (action=%s)", report.id, request.action.value)
        sections = run_draft(self._backend, context, timeout=timeout)
        unchanged = self.unchanged_sections(report, sections)
        if unchanged:
            logger.warning("Regeneration of report %s left %s unchanged", report.id, ", ".join(unchanged))
            raise RegenerationFailed(
                f"Drafting model did not revise the report ({', '.join(unchanged)} unchanged); please retry"
            )
        triage = classify(sections)

        now = datetime.now(timezone.utc)
        entry = ReviewEntry(
            doctor_id=request.doctor_id,
            action=request.action,
            feedback=request.feedback,
            rejection_reason=request.rejection_reason,
            star_rating=request.star_rating,
            regenerated=True,
            created_at=now,
        )

        updated = self.reports.conditional_update(
            report.id,
            expected_status=report.review_status,
            expected_version=report.version,
            fields={
                "subjective": sections.subjective,
                "objective": sections.objective,
                "assessment": sections.assessment,
                "plan": sections.plan,
                "department": triage.department,
                "priority": triage.priority,
                "triage_label": triage.triage_label,
                "red_flags": triage.red_flags,
                "review_status": ReviewStatus.PENDING,
                "assigned_doctor_id": None,
                "reviewed_at": None,
                "doctor_notes": None,
                "prescription": None,
                "rejection_reason": None,
                "updated_at": now,
                "regeneration_count": report.regeneration_count + 1,
                "review_history": [*report.review_history, entry],
            },
        )
        if updated is None:
            raise Conflict("Report changed while it was being regenerated; re-fetch and retry")

        logger.info(
            "Report %s regenerated (revision=%d, triage=%s)",
            report.id,
            updated.regeneration_count,
            updated.triage_label.value,
        )
        return ReviewOutcome(final_status=updated.review_status, regenerated=True, sections=updated.sections())
