from __future__ import annotations

from fastapi import APIRouter, Depends

from src.telecare.domain.models.account import Account
from src.telecare.domain.models.dashboard import DoctorDashboard, DoctorReviewStats, PatientDashboard
from src.telecare.security import get_api_key, get_current_doctor, get_current_patient
from src.telecare.services.dashboard.service import dashboard_service


router = APIRouter(
    prefix="/dashboard",
    tags=["dashboard"],
    dependencies=[Depends(get_api_key)],
)


@router.get("/doctor", response_model=DoctorDashboard)
async def doctor_dashboard(current_doctor: Account = Depends(get_current_doctor)) -> DoctorDashboard:
    """Pending and in-review queues (urgent first) plus this doctor's recent reviews."""

    return dashboard_service.doctor_dashboard(str(current_doctor.id))


@router.get("/doctor/stats", response_model=DoctorReviewStats)
async def doctor_stats(current_doctor: Account = Depends(get_current_doctor)) -> DoctorReviewStats:
    return dashboard_service.doctor_stats(str(current_doctor.id))


@router.get("/patient", response_model=PatientDashboard)
async def patient_dashboard(current_patient: Account = Depends(get_current_patient)) -> PatientDashboard:
    return dashboard_service.patient_dashboard(str(current_patient.id))
