from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional
from uuid import UUID

from src.telecare.domain.models.account import Account
from src.telecare.domain.models.clinical_session import ClinicalSession
from src.telecare.domain.models.soap_report import ReviewStatus, SOAPReport


@dataclass(frozen=True)
class ReportFilter:
    """Equality filters for report queries. ``None`` means "any"."""

    patient_id: Optional[str] = None
    statuses: Optional[frozenset[ReviewStatus]] = None
    assigned_doctor_id: Optional[str] = None


class ReportOrder(str, Enum):
    # Urgent reports first, newest first within the same priority.
    PRIORITY_THEN_NEWEST = "priority_then_newest"
    NEWEST = "newest"
    RECENTLY_REVIEWED = "recently_reviewed"


class AccountRepository(ABC):
    @abstractmethod
    def get(self, account_id: UUID) -> Optional[Account]:
        raise NotImplementedError

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[Account]:
        raise NotImplementedError

    @abstractmethod
    def save(self, account: Account) -> None:
        raise NotImplementedError

    @abstractmethod
    def conditional_update(
        self,
        account_id: UUID,
        *,
        unset_flag: str,
        fields: Mapping[str, Any],
    ) -> Optional[Account]:
        """Atomically apply ``fields`` if the completion flag ``unset_flag`` is still false.

        Returns the updated account, or None when the account does not exist
        or the flag has been set in the meantime.
        """
        raise NotImplementedError


class ClinicalSessionRepository(ABC):
    @abstractmethod
    def get(self, session_id: UUID) -> Optional[ClinicalSession]:
        raise NotImplementedError

    @abstractmethod
    def add(self, session: ClinicalSession) -> None:
        raise NotImplementedError

    @abstractmethod
    def count_for_patient(self, patient_id: str) -> int:
        raise NotImplementedError


class ReportRepository(ABC):
    """Persistence boundary for SOAP reports.

    Reports are never written with a blind save once created: every change
    goes through :meth:`conditional_update`, which applies the new fields only
    if the stored ``review_status`` (and, when given, ``version``) still match
    what the caller read.
    """

    @abstractmethod
    def get(self, report_id: UUID) -> Optional[SOAPReport]:
        raise NotImplementedError

    @abstractmethod
    def get_by_session(self, session_id: UUID) -> Optional[SOAPReport]:
        raise NotImplementedError

    @abstractmethod
    def add(self, report: SOAPReport) -> bool:
        """Insert a new report; return False if its session already has one."""
        raise NotImplementedError

    @abstractmethod
    def conditional_update(
        self,
        report_id: UUID,
        *,
        expected_status: ReviewStatus,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[SOAPReport]:
        """Atomically apply ``fields`` if the stored status/version match.

        Returns the updated report, or None when the report does not exist or
        the precondition no longer holds. A successful update bumps
        ``version`` by one.
        """
        raise NotImplementedError

    @abstractmethod
    def find_many(
        self,
        report_filter: ReportFilter,
        *,
        order: ReportOrder = ReportOrder.NEWEST,
        limit: Optional[int] = None,
    ) -> List[SOAPReport]:
        raise NotImplementedError


def statuses(*values: ReviewStatus) -> frozenset[ReviewStatus]:
    return frozenset(values)


def matches(report: SOAPReport, report_filter: ReportFilter) -> bool:
    if report_filter.patient_id is not None and report.patient_id != report_filter.patient_id:
        return False
    if report_filter.statuses is not None and report.review_status not in report_filter.statuses:
        return False
    if (
        report_filter.assigned_doctor_id is not None
        and report.assigned_doctor_id != report_filter.assigned_doctor_id
    ):
        return False
    return True
