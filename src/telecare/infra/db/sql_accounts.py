from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional
from uuid import UUID

from sqlalchemy import func, select, update

from src.telecare.domain.models.account import Account
from src.telecare.infra.db.models import AccountORM
from src.telecare.infra.db.repositories import AccountRepository
from src.telecare.infra.db.session import SessionFactory


class SqlAccountRepository(AccountRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, account_id: UUID) -> Optional[Account]:
        session = self._session_factory()
        try:
            orm = session.get(AccountORM, account_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def get_by_email(self, email: str) -> Optional[Account]:
        session = self._session_factory()
        try:
            orm = session.execute(
                select(AccountORM).where(func.lower(AccountORM.email) == email.lower())
            ).scalar_one_or_none()
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def save(self, account: Account) -> None:
        """Insert or update an Account in the database."""

        session = self._session_factory()
        try:
            existing = session.get(AccountORM, account.id)
            if existing is None:
                session.add(AccountORM.from_domain(account))
            else:
                existing.email = account.email
                existing.role = account.role.value if account.role is not None else None
                existing.has_completed_patient_profile = account.has_completed_patient_profile
                existing.has_completed_doctor_profile = account.has_completed_doctor_profile
            session.commit()
        finally:
            session.close()

    def conditional_update(
        self,
        account_id: UUID,
        *,
        unset_flag: str,
        fields: Mapping[str, Any],
    ) -> Optional[Account]:
        """Single ``UPDATE ... WHERE <unset_flag> = false``; the row count tells
        whether the other profile was completed concurrently."""

        values = {key: value.value if isinstance(value, Enum) else value for key, value in fields.items()}
        session = self._session_factory()
        try:
            stmt = (
                update(AccountORM)
                .where(AccountORM.id == account_id, getattr(AccountORM, unset_flag) == False)  # noqa: E712
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = session.execute(stmt)
            if result.rowcount != 1:
                session.rollback()
                return None
            session.commit()

            orm = session.get(AccountORM, account_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()
