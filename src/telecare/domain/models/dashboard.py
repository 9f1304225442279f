from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.telecare.domain.models.soap_report import Priority, ReviewStatus, TriageLabel


class ReportSummary(BaseModel):
    id: UUID
    session_id: UUID
    patient_id: str
    chief_complaint: str
    primary_diagnosis: str
    department: str
    priority: Priority
    triage_label: TriageLabel
    red_flags: List[str] = Field(default_factory=list)
    review_status: ReviewStatus
    assigned_doctor_id: Optional[str] = None
    has_prescription: bool = False
    created_at: datetime
    updated_at: datetime
    reviewed_at: Optional[datetime] = None


class DoctorReviewStats(BaseModel):
    doctor_id: str
    total_reviewed: int
    approved: int
    rejected: int


class DoctorDashboard(BaseModel):
    pending: List[ReportSummary]
    in_review: List[ReportSummary]
    reviewed: List[ReportSummary]
    stats: DoctorReviewStats


class PatientDashboard(BaseModel):
    patient_id: str
    total_sessions: int
    reports_ready: int
    pending_review: int
    pending: List[ReportSummary]
    in_review: List[ReportSummary]
    approved: List[ReportSummary]
    rejected: List[ReportSummary]
