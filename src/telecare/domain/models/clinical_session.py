from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class InterviewTurn(BaseModel):
    role: Literal["patient", "assistant"]
    content: str


class ClinicalSession(BaseModel):
    """A completed patient intake interview.

    Sessions are the provenance for a report: the drafting model reads the
    transcript both for the first draft and for every regeneration, so a
    session is never modified once its report exists.
    """

    id: UUID
    patient_id: str
    chief_complaint: Optional[str] = None
    summary: str = ""
    transcript: List[InterviewTurn] = Field(default_factory=list)
    created_at: datetime

    def transcript_text(self) -> str:
        return "\n".join(f"{turn.role}: {turn.content}" for turn in self.transcript)
