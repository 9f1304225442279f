from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from uuid import UUID

from src.telecare.domain.models.review import ReviewDecision, ReviewOutcome
from src.telecare.domain.models.soap_report import ReviewAction, ReviewEntry, ReviewStatus, SOAPReport
from src.telecare.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    RegenerationFailed,
    ValidationFailed,
)
from src.telecare.infra.db import inmemory as repos
from src.telecare.infra.db.repositories import ReportRepository
from src.telecare.services.audit.service import AuditService, audit_service
from src.telecare.services.regeneration.agent import RegenerationAgent, RegenerationRequest

logger = logging.getLogger("review")

MIN_STAR_RATING = 1
MAX_STAR_RATING = 5


class ReportReviewService:
    """Owns the review lifecycle of a SOAP report.

    Every transition is a single conditional update keyed on the status (and
    version) the operation read, so concurrent callers cannot both succeed:
    the loser gets :class:`Conflict` and must re-fetch. An operation that
    fails validation or starts from the wrong state raises before anything
    is written.
    """

    _TRANSITIONS: Dict[ReviewStatus, Set[ReviewStatus]] = {
        ReviewStatus.PENDING: {ReviewStatus.IN_REVIEW},
        ReviewStatus.IN_REVIEW: {ReviewStatus.APPROVED, ReviewStatus.REJECTED, ReviewStatus.PENDING},
        ReviewStatus.APPROVED: set(),
        # A rejected report only moves again through regeneration.
        ReviewStatus.REJECTED: {ReviewStatus.PENDING},
    }

    def __init__(
        self,
        *,
        report_repository: ReportRepository | None = None,
        regeneration_agent: RegenerationAgent | None = None,
        audit: AuditService | None = None,
    ) -> None:
        self._report_repository = report_repository
        self._agent = regeneration_agent or RegenerationAgent(report_repository=report_repository)
        self._audit = audit or audit_service

    @property
    def reports(self) -> ReportRepository:
        return self._report_repository or repos.report_repository

    @property
    def agent(self) -> RegenerationAgent:
        return self._agent

    def get_report(self, report_id: UUID) -> SOAPReport:
        report = self.reports.get(report_id)
        if report is None:
            raise NotFound("Report not found")
        return report

    # Transitions

    def claim(self, report_id: UUID, doctor_id: str) -> SOAPReport:
        report = self.get_report(report_id)
        if report.review_status == ReviewStatus.IN_REVIEW:
            raise Conflict("Report is no longer available; another doctor has already claimed it")
        self._ensure_transition(report, ReviewStatus.IN_REVIEW)

        updated = self.reports.conditional_update(
            report.id,
            expected_status=ReviewStatus.PENDING,
            expected_version=report.version,
            fields={
                "review_status": ReviewStatus.IN_REVIEW,
                "assigned_doctor_id": doctor_id,
                "updated_at": datetime.now(timezone.utc),
            },
        )
        if updated is None:
            raise Conflict("Report is no longer available; another doctor has already claimed it")

        self._audit.log_event(
            action="claim_report",
            resource_type="soap_report",
            resource_id=str(report.id),
            actor_id=doctor_id,
            extra={"status": updated.review_status.value},
        )
        return updated

    def decide(self, report_id: UUID, doctor_id: str, decision: ReviewDecision) -> ReviewOutcome:
        """Apply a doctor's approve / reject / request_changes decision.

        Only valid on an ``in_review`` report held by ``doctor_id``; an
        unassigned ``in_review`` report is claimed by the same update.
        ``request_changes`` and low-rated rejections are handed to the
        regeneration agent, whose result decides the final status.
        """

        self._validate_decision(decision)
        report = self.get_report(report_id)
        if report.review_status != ReviewStatus.IN_REVIEW:
            raise InvalidTransition(
                f"Cannot {decision.action.value} a report in status '{report.review_status.value}'"
            )
        if report.assigned_doctor_id is not None and report.assigned_doctor_id != doctor_id:
            raise Forbidden("Report is assigned to another doctor")

        if decision.action == ReviewAction.APPROVE:
            outcome = self._approve(report, doctor_id, decision)
        elif decision.action == ReviewAction.REJECT:
            outcome = self._reject(report, doctor_id, decision)
        else:
            outcome = self._request_changes(report, doctor_id, decision)

        self._audit.log_event(
            action="review_report",
            resource_type="soap_report",
            resource_id=str(report.id),
            actor_id=doctor_id,
            extra={
                "review_action": decision.action.value,
                "star_rating": decision.star_rating,
                "final_status": outcome.final_status.value,
                "regenerated": outcome.regenerated,
            },
        )
        return outcome

    def request_regeneration(
        self,
        report_id: UUID,
        doctor_id: str,
        *,
        feedback: str,
        star_rating: Optional[int] = None,
    ) -> ReviewOutcome:
        """Explicitly regenerate a report that was left ``rejected``.

        This is the human-initiated re-request for rejections whose rating was
        too high to regenerate automatically. Only the doctor who rejected the
        report may ask for it.
        """

        if not feedback or not feedback.strip():
            raise ValidationFailed("Feedback is required to regenerate a report")
        self._validate_rating(star_rating, required=False)

        report = self.get_report(report_id)
        if report.review_status != ReviewStatus.REJECTED:
            raise InvalidTransition(
                f"Only rejected reports can be regenerated; report is '{report.review_status.value}'"
            )
        if report.assigned_doctor_id != doctor_id:
            raise Forbidden("Only the reviewing doctor can request regeneration of this report")

        outcome = self._agent.regenerate(
            report,
            RegenerationRequest(
                doctor_id=doctor_id,
                action=ReviewAction.REGENERATE,
                feedback=feedback,
                rejection_reason=report.rejection_reason,
                star_rating=star_rating,
            ),
        )

        self._audit.log_event(
            action="regenerate_report",
            resource_type="soap_report",
            resource_id=str(report.id),
            actor_id=doctor_id,
            extra={"star_rating": star_rating, "final_status": outcome.final_status.value, "regenerated": True},
        )
        return outcome

    # Decision handlers

    def _approve(self, report: SOAPReport, doctor_id: str, decision: ReviewDecision) -> ReviewOutcome:
        now = datetime.now(timezone.utc)
        updated = self._commit(
            report,
            ReviewStatus.APPROVED,
            {
                "assigned_doctor_id": doctor_id,
                "reviewed_at": now,
                "updated_at": now,
                "doctor_notes": decision.doctor_notes,
                "prescription": decision.prescription,
                "review_history": [*report.review_history, self._entry(doctor_id, decision, now)],
            },
        )
        return ReviewOutcome(final_status=updated.review_status)

    def _reject(self, report: SOAPReport, doctor_id: str, decision: ReviewDecision) -> ReviewOutcome:
        if not self._agent.should_regenerate(ReviewAction.REJECT, decision.star_rating):
            updated = self._commit_rejection(report, doctor_id, decision)
            return ReviewOutcome(final_status=updated.review_status)

        try:
            return self._agent.regenerate(report, self._regeneration_request(doctor_id, decision))
        except RegenerationFailed:
            # The rejection itself stands even though the redraft did not.
            self._commit_rejection(report, doctor_id, decision)
            raise

    def _request_changes(self, report: SOAPReport, doctor_id: str, decision: ReviewDecision) -> ReviewOutcome:
        # On failure the report stays in_review with the same doctor, who may
        # resubmit the request.
        return self._agent.regenerate(report, self._regeneration_request(doctor_id, decision))

    def _commit_rejection(self, report: SOAPReport, doctor_id: str, decision: ReviewDecision) -> SOAPReport:
        now = datetime.now(timezone.utc)
        fields: Dict[str, Any] = {
            "assigned_doctor_id": doctor_id,
            "reviewed_at": now,
            "updated_at": now,
            "rejection_reason": decision.rejection_reason,
            "review_history": [*report.review_history, self._entry(doctor_id, decision, now)],
        }
        if decision.doctor_notes is not None:
            fields["doctor_notes"] = decision.doctor_notes
        return self._commit(report, ReviewStatus.REJECTED, fields)

    # Helpers

    def _commit(self, report: SOAPReport, target: ReviewStatus, fields: Dict[str, Any]) -> SOAPReport:
        self._ensure_transition(report, target)
        updated = self.reports.conditional_update(
            report.id,
            expected_status=report.review_status,
            expected_version=report.version,
            fields={**fields, "review_status": target},
        )
        if updated is None:
            raise Conflict("Report was modified concurrently; re-fetch and try again")
        logger.info("Report %s moved %s -> %s", report.id, report.review_status.value, target.value)
        return updated

    def _ensure_transition(self, report: SOAPReport, target: ReviewStatus) -> None:
        if target not in self._TRANSITIONS[report.review_status]:
            raise InvalidTransition(
                f"Invalid transition from '{report.review_status.value}' to '{target.value}'"
            )

    def _validate_decision(self, decision: ReviewDecision) -> None:
        if decision.action == ReviewAction.REGENERATE:
            raise ValidationFailed("Use the regenerate operation to re-request a rejected report")
        if decision.action == ReviewAction.REJECT:
            if not decision.rejection_reason or not decision.rejection_reason.strip():
                raise ValidationFailed("A rejection reason is required to reject a report")
            self._validate_rating(decision.star_rating, required=False)
        elif decision.action == ReviewAction.REQUEST_CHANGES:
            if not decision.feedback or not decision.feedback.strip():
                raise ValidationFailed("Feedback is required to request changes")
            self._validate_rating(decision.star_rating, required=True)
        else:
            self._validate_rating(decision.star_rating, required=False)

    @staticmethod
    def _validate_rating(star_rating: Optional[int], *, required: bool) -> None:
        if star_rating is None:
            if required:
                raise ValidationFailed("A star rating between 1 and 5 is required")
            return
        if not MIN_STAR_RATING <= star_rating <= MAX_STAR_RATING:
            raise ValidationFailed("Star rating must be between 1 and 5")

    @staticmethod
    def _entry(doctor_id: str, decision: ReviewDecision, now: datetime) -> ReviewEntry:
        return ReviewEntry(
            doctor_id=doctor_id,
            action=decision.action,
            feedback=decision.feedback,
            rejection_reason=decision.rejection_reason,
            star_rating=decision.star_rating,
            created_at=now,
        )

    @staticmethod
    def _regeneration_request(doctor_id: str, decision: ReviewDecision) -> RegenerationRequest:
        return RegenerationRequest(
            doctor_id=doctor_id,
            action=decision.action,
            feedback=decision.feedback,
            rejection_reason=decision.rejection_reason,
            star_rating=decision.star_rating,
        )


review_service = ReportReviewService()
