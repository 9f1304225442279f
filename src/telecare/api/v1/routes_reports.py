from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.telecare.domain.models.account import Account
from src.telecare.domain.models.review import ReviewDecision, ReviewOutcome
from src.telecare.domain.models.soap_report import SOAPReport
from src.telecare.security import (
    ensure_can_view_report,
    get_api_key,
    get_current_account,
    get_current_doctor,
)
from src.telecare.services.review.state_machine import review_service


router = APIRouter(
    prefix="/reports",
    tags=["reports"],
    dependencies=[Depends(get_api_key)],
)


class RegenerateRequest(BaseModel):
    feedback: str
    star_rating: Optional[int] = None


@router.get("/{report_id}", response_model=SOAPReport)
async def get_report(
    report_id: UUID,
    current_account: Account = Depends(get_current_account),
) -> SOAPReport:
    report = review_service.get_report(report_id)
    ensure_can_view_report(current_account, report)
    return report


@router.put("/{report_id}/claim", response_model=SOAPReport)
async def claim_report(
    report_id: UUID,
    current_doctor: Account = Depends(get_current_doctor),
) -> SOAPReport:
    """Take a pending report into review.

    Two doctors racing for the same report get exactly one success; the other
    receives 409 CONFLICT and should refresh their queue.
    """

    return review_service.claim(report_id, str(current_doctor.id))


# Review and regeneration block on the drafting model, so they are plain
# functions and run in the threadpool.
@router.post("/{report_id}/review", response_model=ReviewOutcome)
def review_report(
    report_id: UUID,
    payload: ReviewDecision,
    current_doctor: Account = Depends(get_current_doctor),
) -> ReviewOutcome:
    return review_service.decide(report_id, str(current_doctor.id), payload)


@router.post("/{report_id}/regenerate", response_model=ReviewOutcome)
def regenerate_report(
    report_id: UUID,
    payload: RegenerateRequest,
    current_doctor: Account = Depends(get_current_doctor),
) -> ReviewOutcome:
    """Re-request a draft for a report this doctor rejected."""

    return review_service.request_regeneration(
        report_id,
        str(current_doctor.id),
        feedback=payload.feedback,
        star_rating=payload.star_rating,
    )
