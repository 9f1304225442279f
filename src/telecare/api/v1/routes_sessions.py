from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.telecare.domain.models.account import Account
from src.telecare.domain.models.clinical_session import ClinicalSession, InterviewTurn
from src.telecare.domain.models.soap_report import SOAPReport
from src.telecare.errors import NotFound
from src.telecare.security import get_api_key, get_current_patient
from src.telecare.services.audit.service import audit_service
from src.telecare.services.drafting.service import drafting_service


router = APIRouter(
    prefix="/sessions",
    tags=["sessions"],
    dependencies=[Depends(get_api_key)],
)


class SessionCreateRequest(BaseModel):
    chief_complaint: Optional[str] = None
    summary: str = ""
    transcript: List[InterviewTurn] = Field(default_factory=list)


@router.post("/", response_model=ClinicalSession, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreateRequest,
    current_patient: Account = Depends(get_current_patient),
) -> ClinicalSession:
    """Record a completed intake interview for the current patient."""

    session = drafting_service.create_session(
        patient_id=str(current_patient.id),
        transcript=payload.transcript,
        summary=payload.summary,
        chief_complaint=payload.chief_complaint,
    )

    audit_service.log_event(
        action="create_session",
        resource_type="clinical_session",
        resource_id=str(session.id),
        actor_id=str(current_patient.id),
        extra={"turns": len(session.transcript)},
    )
    return session


@router.post("/{session_id}/report", response_model=SOAPReport, status_code=status.HTTP_201_CREATED)
def draft_session_report(
    session_id: UUID,
    current_patient: Account = Depends(get_current_patient),
) -> SOAPReport:
    """Draft the SOAP report for a session; it enters the doctors' pending queue."""

    session = drafting_service.sessions.get(session_id)
    if session is None or session.patient_id != str(current_patient.id):
        raise NotFound("Clinical session not found")

    report = drafting_service.draft_report(session_id)

    audit_service.log_event(
        action="draft_report",
        resource_type="soap_report",
        resource_id=str(report.id),
        actor_id=str(current_patient.id),
        extra={"triage_label": report.triage_label.value, "department": report.department},
    )
    return report
