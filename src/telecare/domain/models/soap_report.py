from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ReviewStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class SeverityLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    INITIAL = "initial"
    NORMAL = "normal"


class TriageLabel(str, Enum):
    EMERGENCY = "emergency"
    URGENT = "urgent"
    STANDARD = "standard"
    ROUTINE = "routine"


class Priority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"


# Sort rank used by dashboard queues: urgent reports first.
PRIORITY_RANK: Dict[Priority, int] = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.NORMAL: 2,
}


class SubjectiveSection(BaseModel):
    chief_complaint: str = Field(min_length=1)
    symptoms: List[str]
    patient_history: str
    patient_narrative: str
    red_flags: List[str] = Field(default_factory=list)


class ObjectiveSection(BaseModel):
    reported_symptoms: List[str]
    severity: SeverityLevel
    confidence_level: float = Field(ge=0, le=100)
    vital_signs: Dict[str, str] = Field(default_factory=dict)


class AssessmentSection(BaseModel):
    primary_diagnosis: str = Field(min_length=1)
    differential_diagnosis: List[str]
    severity: SeverityLevel
    confidence: float = Field(ge=0, le=100)
    ai_analysis: str
    # Explicit department classification, when the drafting model supplies one.
    department: Optional[str] = None
    medical_sources: List[str] = Field(default_factory=list)


class PlanSection(BaseModel):
    recommendations: List[str]
    tests_needed: List[str]
    specialist_referral: Optional[str] = None
    follow_up_needed: bool
    urgency: TriageLabel


class SOAPSections(BaseModel):
    """The four clinical sections of a report.

    Drafting model output is validated against this model on every write
    (first draft and regeneration) rather than trusting the upstream shape.
    """

    subjective: SubjectiveSection
    objective: ObjectiveSection
    assessment: AssessmentSection
    plan: PlanSection


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"
    # Explicit re-request on a report that was left rejected.
    REGENERATE = "regenerate"


class ReviewEntry(BaseModel):
    """One doctor review recorded against a report.

    Entries are append-only and survive regeneration, so the report keeps the
    chain of feedback that produced its current sections.
    """

    doctor_id: str
    action: ReviewAction
    feedback: Optional[str] = None
    rejection_reason: Optional[str] = None
    star_rating: Optional[int] = None
    regenerated: bool = False
    created_at: datetime


class SOAPReport(BaseModel):
    """AI-drafted clinical report awaiting or past doctor review.

    Exactly one report exists per clinical session. The report is mutated only
    by the review state machine and the regeneration agent, always through a
    conditional update on ``review_status`` and ``version``.
    """

    id: UUID
    session_id: UUID
    patient_id: str

    subjective: SubjectiveSection
    objective: ObjectiveSection
    assessment: AssessmentSection
    plan: PlanSection

    department: str
    priority: Priority
    triage_label: TriageLabel
    red_flags: List[str] = Field(default_factory=list)

    review_status: ReviewStatus = ReviewStatus.PENDING
    assigned_doctor_id: Optional[str] = None
    doctor_notes: Optional[str] = None
    prescription: Optional[str] = None
    rejection_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    reviewed_at: Optional[datetime] = None

    version: int = 0
    regeneration_count: int = 0
    review_history: List[ReviewEntry] = Field(default_factory=list)

    def sections(self) -> SOAPSections:
        return SOAPSections(
            subjective=self.subjective,
            objective=self.objective,
            assessment=self.assessment,
            plan=self.plan,
        )
