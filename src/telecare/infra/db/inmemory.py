from __future__ import annotations

import threading
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from src.telecare.domain.models.account import Account
from src.telecare.domain.models.clinical_session import ClinicalSession
from src.telecare.domain.models.soap_report import PRIORITY_RANK, ReviewStatus, SOAPReport
from src.telecare.infra.db.repositories import (
    AccountRepository,
    ClinicalSessionRepository,
    ReportFilter,
    ReportOrder,
    ReportRepository,
    matches,
)


class InMemoryAccountRepository(AccountRepository):
    def __init__(self) -> None:
        self._accounts: Dict[UUID, Account] = {}
        self._lock = threading.Lock()

    def get(self, account_id: UUID) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(account_id)
            return account.model_copy(deep=True) if account is not None else None

    def get_by_email(self, email: str) -> Optional[Account]:
        needle = email.lower()
        with self._lock:
            for account in self._accounts.values():
                if account.email.lower() == needle:
                    return account.model_copy(deep=True)
        return None

    def save(self, account: Account) -> None:
        with self._lock:
            self._accounts[account.id] = account.model_copy(deep=True)

    def conditional_update(
        self,
        account_id: UUID,
        *,
        unset_flag: str,
        fields: Mapping[str, Any],
    ) -> Optional[Account]:
        with self._lock:
            current = self._accounts.get(account_id)
            if current is None or getattr(current, unset_flag):
                return None
            updated = current.model_copy(update=dict(fields), deep=True)
            self._accounts[account_id] = updated
            return updated.model_copy(deep=True)


class InMemoryClinicalSessionRepository(ClinicalSessionRepository):
    def __init__(self) -> None:
        self._sessions: Dict[UUID, ClinicalSession] = {}
        self._lock = threading.Lock()

    def get(self, session_id: UUID) -> Optional[ClinicalSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session is not None else None

    def add(self, session: ClinicalSession) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)

    def count_for_patient(self, patient_id: str) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.patient_id == patient_id)


def sort_reports(reports: List[SOAPReport], order: ReportOrder) -> List[SOAPReport]:
    if order == ReportOrder.RECENTLY_REVIEWED:
        return sorted(
            reports,
            key=lambda r: r.reviewed_at.timestamp() if r.reviewed_at is not None else 0.0,
            reverse=True,
        )
    newest_first = sorted(reports, key=lambda r: r.created_at, reverse=True)
    if order == ReportOrder.PRIORITY_THEN_NEWEST:
        # sorted() is stable, so newest-first is kept within each priority.
        return sorted(newest_first, key=lambda r: PRIORITY_RANK[r.priority])
    return newest_first


class InMemoryReportRepository(ReportRepository):
    """Dict-backed report store with an atomic compare-and-swap.

    Stored reports are copied on the way in and out so callers can never
    mutate persisted state except through :meth:`conditional_update`, which
    holds a lock across the precondition check and the write.
    """

    def __init__(self) -> None:
        self._reports: Dict[UUID, SOAPReport] = {}
        self._lock = threading.Lock()

    def get(self, report_id: UUID) -> Optional[SOAPReport]:
        with self._lock:
            report = self._reports.get(report_id)
            return report.model_copy(deep=True) if report is not None else None

    def get_by_session(self, session_id: UUID) -> Optional[SOAPReport]:
        with self._lock:
            for report in self._reports.values():
                if report.session_id == session_id:
                    return report.model_copy(deep=True)
        return None

    def add(self, report: SOAPReport) -> bool:
        with self._lock:
            if any(r.session_id == report.session_id for r in self._reports.values()):
                return False
            self._reports[report.id] = report.model_copy(deep=True)
            return True

    def conditional_update(
        self,
        report_id: UUID,
        *,
        expected_status: ReviewStatus,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[SOAPReport]:
        with self._lock:
            current = self._reports.get(report_id)
            if current is None or current.review_status != expected_status:
                return None
            if expected_version is not None and current.version != expected_version:
                return None
            update = dict(fields)
            update["version"] = current.version + 1
            updated = current.model_copy(update=update, deep=True)
            self._reports[report_id] = updated
            return updated.model_copy(deep=True)

    def find_many(
        self,
        report_filter: ReportFilter,
        *,
        order: ReportOrder = ReportOrder.NEWEST,
        limit: Optional[int] = None,
    ) -> List[SOAPReport]:
        with self._lock:
            selected = [r.model_copy(deep=True) for r in self._reports.values() if matches(r, report_filter)]
        ordered = sort_reports(selected, order)
        return ordered[:limit] if limit is not None else ordered


# Module-level repositories. ``init_sql_repositories`` swaps these for
# SQL-backed implementations at startup; services look them up at call time
# so the swap takes effect everywhere.
account_repository: AccountRepository = InMemoryAccountRepository()
clinical_session_repository: ClinicalSessionRepository = InMemoryClinicalSessionRepository()
report_repository: ReportRepository = InMemoryReportRepository()
