from __future__ import annotations

from typing import List

from src.telecare.config import settings
from src.telecare.domain.models.dashboard import (
    DoctorDashboard,
    DoctorReviewStats,
    PatientDashboard,
    ReportSummary,
)
from src.telecare.domain.models.soap_report import ReviewStatus, SOAPReport
from src.telecare.infra.db import inmemory as repos
from src.telecare.infra.db.repositories import (
    ClinicalSessionRepository,
    ReportFilter,
    ReportOrder,
    ReportRepository,
    statuses,
)


def summarize(report: SOAPReport) -> ReportSummary:
    return ReportSummary(
        id=report.id,
        session_id=report.session_id,
        patient_id=report.patient_id,
        chief_complaint=report.subjective.chief_complaint,
        primary_diagnosis=report.assessment.primary_diagnosis,
        department=report.department,
        priority=report.priority,
        triage_label=report.triage_label,
        red_flags=report.red_flags,
        review_status=report.review_status,
        assigned_doctor_id=report.assigned_doctor_id,
        has_prescription=bool(report.prescription),
        created_at=report.created_at,
        updated_at=report.updated_at,
        reviewed_at=report.reviewed_at,
    )


class DashboardQueryService:
    """Read-only projections of reports for doctor and patient dashboards.

    Clients poll these; reads take no locks and may be slightly stale.
    Patient projections are always filtered on the patient's own id.
    """

    def __init__(
        self,
        *,
        report_repository: ReportRepository | None = None,
        session_repository: ClinicalSessionRepository | None = None,
    ) -> None:
        self._report_repository = report_repository
        self._session_repository = session_repository

    @property
    def reports(self) -> ReportRepository:
        return self._report_repository or repos.report_repository

    @property
    def sessions(self) -> ClinicalSessionRepository:
        return self._session_repository or repos.clinical_session_repository

    def _summaries(self, report_filter: ReportFilter, order: ReportOrder, limit: int | None = None) -> List[ReportSummary]:
        return [summarize(r) for r in self.reports.find_many(report_filter, order=order, limit=limit)]

    def doctor_stats(self, doctor_id: str) -> DoctorReviewStats:
        assigned = self.reports.find_many(
            ReportFilter(
                assigned_doctor_id=doctor_id,
                statuses=statuses(ReviewStatus.APPROVED, ReviewStatus.REJECTED),
            )
        )
        approved = sum(1 for r in assigned if r.review_status == ReviewStatus.APPROVED)
        return DoctorReviewStats(
            doctor_id=doctor_id,
            total_reviewed=len(assigned),
            approved=approved,
            rejected=len(assigned) - approved,
        )

    def doctor_dashboard(self, doctor_id: str) -> DoctorDashboard:
        return DoctorDashboard(
            pending=self._summaries(
                ReportFilter(statuses=statuses(ReviewStatus.PENDING)),
                ReportOrder.PRIORITY_THEN_NEWEST,
            ),
            in_review=self._summaries(
                ReportFilter(statuses=statuses(ReviewStatus.IN_REVIEW)),
                ReportOrder.PRIORITY_THEN_NEWEST,
            ),
            reviewed=self._summaries(
                ReportFilter(
                    assigned_doctor_id=doctor_id,
                    statuses=statuses(ReviewStatus.APPROVED, ReviewStatus.REJECTED),
                ),
                ReportOrder.RECENTLY_REVIEWED,
                limit=settings.doctor_reviewed_limit,
            ),
            stats=self.doctor_stats(doctor_id),
        )

    def patient_dashboard(self, patient_id: str) -> PatientDashboard:
        own = self._summaries(ReportFilter(patient_id=patient_id), ReportOrder.NEWEST)
        by_status = {status: [s for s in own if s.review_status == status] for status in ReviewStatus}
        return PatientDashboard(
            patient_id=patient_id,
            total_sessions=self.sessions.count_for_patient(patient_id),
            reports_ready=len(by_status[ReviewStatus.APPROVED]),
            pending_review=len(by_status[ReviewStatus.PENDING]) + len(by_status[ReviewStatus.IN_REVIEW]),
            pending=by_status[ReviewStatus.PENDING],
            in_review=by_status[ReviewStatus.IN_REVIEW],
            approved=by_status[ReviewStatus.APPROVED],
            rejected=by_status[ReviewStatus.REJECTED],
        )


dashboard_service = DashboardQueryService()
