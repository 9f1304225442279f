from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from src.telecare.domain.models.account import Account, AccountRole, RoleCheck
from src.telecare.errors import Conflict, NotFound, RoleConflict
from src.telecare.infra.db import inmemory as repos
from src.telecare.infra.db.repositories import AccountRepository
from src.telecare.services.audit.service import AuditService, audit_service

_COMPLETION_FLAGS = {
    AccountRole.PATIENT: "has_completed_patient_profile",
    AccountRole.DOCTOR: "has_completed_doctor_profile",
}

_CONFLICT_MESSAGES = {
    AccountRole.DOCTOR: (
        "This account is registered as a patient. Please use a different email for doctor registration."
    ),
    AccountRole.PATIENT: (
        "This account is registered as a doctor. Please use a different email for patient registration."
    ),
}


class RoleConflictGuard:
    """Keeps an account from being both a complete patient and a complete doctor.

    Signup-time role selection (:meth:`assume_role`) and profile completion
    (:meth:`complete_profile`) both go through :meth:`ensure_no_conflict`, so
    the rule lives in exactly one place.
    """

    def __init__(
        self,
        *,
        account_repository: AccountRepository | None = None,
        audit: AuditService | None = None,
    ) -> None:
        self._account_repository = account_repository
        self._audit = audit or audit_service

    @property
    def accounts(self) -> AccountRepository:
        return self._account_repository or repos.account_repository

    def create_account(self, *, email: str, role: Optional[AccountRole] = None) -> Account:
        if self.accounts.get_by_email(email) is not None:
            raise Conflict("An account with this email already exists")
        account = Account(id=uuid4(), email=email, role=role, created_at=datetime.now(timezone.utc))
        self.accounts.save(account)
        self._audit.log_event(
            action="create_account",
            resource_type="account",
            resource_id=str(account.id),
            extra={"role": role.value if role else None},
        )
        return account

    def get_account(self, account_id: UUID) -> Account:
        account = self.accounts.get(account_id)
        if account is None:
            raise NotFound("Account not found")
        return account

    @staticmethod
    def ensure_no_conflict(account: Account, requested_role: AccountRole) -> None:
        if requested_role == AccountRole.DOCTOR and account.has_completed_patient_profile:
            raise RoleConflict(_CONFLICT_MESSAGES[AccountRole.DOCTOR])
        if requested_role == AccountRole.PATIENT and account.has_completed_doctor_profile:
            raise RoleConflict(_CONFLICT_MESSAGES[AccountRole.PATIENT])

    def assume_role(self, account_id: UUID, requested_role: AccountRole) -> Account:
        account = self.get_account(account_id)
        self.ensure_no_conflict(account, requested_role)
        if account.role != requested_role:
            account = self._guarded_write(account_id, requested_role, {"role": requested_role})

        self._audit.log_event(
            action="assume_role",
            resource_type="account",
            resource_id=str(account_id),
            actor_id=str(account_id),
            extra={"role": requested_role.value},
        )
        return account

    def complete_profile(self, account_id: UUID, role: AccountRole) -> Account:
        """Mark the patient or doctor profile complete and fix the role."""

        account = self.get_account(account_id)
        self.ensure_no_conflict(account, role)
        account = self._guarded_write(account_id, role, {"role": role, _COMPLETION_FLAGS[role]: True})

        self._audit.log_event(
            action="complete_profile",
            resource_type="account",
            resource_id=str(account_id),
            actor_id=str(account_id),
            extra={"role": role.value},
        )
        return account

    def _guarded_write(self, account_id: UUID, role: AccountRole, fields: dict) -> Account:
        """Write ``fields`` only while the other role's profile is still incomplete.

        The store checks the flag in the same update, so two workers completing
        different profiles for one account cannot both succeed.
        """

        other = AccountRole.PATIENT if role == AccountRole.DOCTOR else AccountRole.DOCTOR
        updated = self.accounts.conditional_update(account_id, unset_flag=_COMPLETION_FLAGS[other], fields=fields)
        if updated is None:
            self.ensure_no_conflict(self.get_account(account_id), role)
            raise RoleConflict(_CONFLICT_MESSAGES[role])
        return updated

    def check_role(self, account_id: UUID) -> RoleCheck:
        account = self.get_account(account_id)
        return RoleCheck(
            current_role=account.role,
            is_patient=account.has_completed_patient_profile,
            is_doctor=account.has_completed_doctor_profile,
        )


role_guard = RoleConflictGuard()
