from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr


class AccountRole(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"


class Account(BaseModel):
    """A portal account that can act as a patient or as a doctor, never both.

    ``role`` stays unset until the account picks one at signup. Once either
    completion flag is true the declared role is effectively fixed; only the
    role conflict guard writes these fields.
    """

    id: UUID
    email: EmailStr
    role: Optional[AccountRole] = None
    has_completed_patient_profile: bool = False
    has_completed_doctor_profile: bool = False
    created_at: datetime


class RoleCheck(BaseModel):
    current_role: Optional[AccountRole]
    is_patient: bool
    is_doctor: bool
