from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from src.telecare.domain.models.soap_report import ReviewAction, ReviewStatus, SOAPSections


class ReviewDecision(BaseModel):
    """Payload of a doctor's review decision.

    Field requirements depend on ``action`` and are enforced by the review
    service so that a malformed request is reported as a validation failure
    instead of a partially applied transition.
    """

    action: ReviewAction
    feedback: Optional[str] = None
    star_rating: Optional[int] = None
    rejection_reason: Optional[str] = None
    prescription: Optional[str] = None
    doctor_notes: Optional[str] = None


class ReviewOutcome(BaseModel):
    final_status: ReviewStatus
    regenerated: bool = False
    sections: Optional[SOAPSections] = None
