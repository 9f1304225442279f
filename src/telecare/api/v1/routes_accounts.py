from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr

from src.telecare.domain.models.account import Account, AccountRole, RoleCheck
from src.telecare.security import get_api_key, get_current_account
from src.telecare.services.accounts.role_guard import role_guard


router = APIRouter(
    prefix="/accounts",
    tags=["accounts"],
    dependencies=[Depends(get_api_key)],
)


class SignupRequest(BaseModel):
    email: EmailStr
    role: Optional[AccountRole] = None


class RoleRequest(BaseModel):
    role: AccountRole


@router.post("/", response_model=Account, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest) -> Account:
    """Register the account record for a user the session gateway just created."""

    return role_guard.create_account(email=payload.email, role=payload.role)


@router.get("/me", response_model=Account)
async def get_me(current_account: Account = Depends(get_current_account)) -> Account:
    return current_account


@router.get("/me/role-check", response_model=RoleCheck)
async def check_role(current_account: Account = Depends(get_current_account)) -> RoleCheck:
    return role_guard.check_role(current_account.id)


@router.put("/me/role", response_model=Account)
async def assume_role(
    payload: RoleRequest,
    current_account: Account = Depends(get_current_account),
) -> Account:
    """Select or switch the account's role during onboarding.

    Fails with ROLE_CONFLICT once the other profile type has been completed.
    """

    return role_guard.assume_role(current_account.id, payload.role)


@router.post("/me/profile-completion", response_model=Account)
async def complete_profile(
    payload: RoleRequest,
    current_account: Account = Depends(get_current_account),
) -> Account:
    return role_guard.complete_profile(current_account.id, payload.role)
