from __future__ import annotations

from typing import Any, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError

from src.telecare.domain.models.clinical_session import ClinicalSession
from src.telecare.domain.models.soap_report import PRIORITY_RANK, ReviewStatus, SOAPReport
from src.telecare.infra.db.models import ClinicalSessionORM, SOAPReportORM
from src.telecare.infra.db.repositories import (
    ClinicalSessionRepository,
    ReportFilter,
    ReportOrder,
    ReportRepository,
)
from src.telecare.infra.db.session import SessionFactory


class SqlClinicalSessionRepository(ClinicalSessionRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, session_id: UUID) -> Optional[ClinicalSession]:
        session = self._session_factory()
        try:
            orm = session.get(ClinicalSessionORM, session_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def add(self, clinical_session: ClinicalSession) -> None:
        session = self._session_factory()
        try:
            session.add(ClinicalSessionORM.from_domain(clinical_session))
            session.commit()
        finally:
            session.close()

    def count_for_patient(self, patient_id: str) -> int:
        session = self._session_factory()
        try:
            stmt = select(func.count()).select_from(ClinicalSessionORM).where(
                ClinicalSessionORM.patient_id == patient_id
            )
            return int(session.execute(stmt).scalar_one())
        finally:
            session.close()


class SqlReportRepository(ReportRepository):
    """SQL-backed report store.

    The compare-and-swap is a single ``UPDATE ... WHERE review_status = ?``
    statement (plus ``version = ?`` when requested); the affected row count
    tells us whether the precondition held, so two concurrent claims can never
    both succeed.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, report_id: UUID) -> Optional[SOAPReport]:
        session = self._session_factory()
        try:
            orm = session.get(SOAPReportORM, report_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def get_by_session(self, session_id: UUID) -> Optional[SOAPReport]:
        session = self._session_factory()
        try:
            orm = session.execute(
                select(SOAPReportORM).where(SOAPReportORM.session_id == session_id)
            ).scalar_one_or_none()
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def add(self, report: SOAPReport) -> bool:
        session = self._session_factory()
        try:
            session.add(SOAPReportORM.from_domain(report))
            try:
                session.commit()
            except IntegrityError:
                # session_id is unique: another report already exists for it.
                session.rollback()
                return False
            return True
        finally:
            session.close()

    def conditional_update(
        self,
        report_id: UUID,
        *,
        expected_status: ReviewStatus,
        fields: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[SOAPReport]:
        session = self._session_factory()
        try:
            stmt = update(SOAPReportORM).where(
                SOAPReportORM.id == report_id,
                SOAPReportORM.review_status == expected_status.value,
            )
            if expected_version is not None:
                stmt = stmt.where(SOAPReportORM.version == expected_version)
            stmt = stmt.values(
                **SOAPReportORM.column_values(dict(fields)),
                version=SOAPReportORM.version + 1,
            ).execution_options(synchronize_session=False)

            result = session.execute(stmt)
            if result.rowcount != 1:
                session.rollback()
                return None
            session.commit()

            orm = session.get(SOAPReportORM, report_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def find_many(
        self,
        report_filter: ReportFilter,
        *,
        order: ReportOrder = ReportOrder.NEWEST,
        limit: Optional[int] = None,
    ) -> List[SOAPReport]:
        session = self._session_factory()
        try:
            stmt = select(SOAPReportORM)
            if report_filter.patient_id is not None:
                stmt = stmt.where(SOAPReportORM.patient_id == report_filter.patient_id)
            if report_filter.statuses is not None:
                stmt = stmt.where(SOAPReportORM.review_status.in_([s.value for s in report_filter.statuses]))
            if report_filter.assigned_doctor_id is not None:
                stmt = stmt.where(SOAPReportORM.assigned_doctor_id == report_filter.assigned_doctor_id)

            if order == ReportOrder.PRIORITY_THEN_NEWEST:
                rank = case(
                    {priority.value: value for priority, value in PRIORITY_RANK.items()},
                    value=SOAPReportORM.priority,
                    else_=len(PRIORITY_RANK),
                )
                stmt = stmt.order_by(rank.asc(), SOAPReportORM.created_at.desc())
            elif order == ReportOrder.RECENTLY_REVIEWED:
                stmt = stmt.order_by(SOAPReportORM.reviewed_at.desc().nulls_last())
            else:
                stmt = stmt.order_by(SOAPReportORM.created_at.desc())

            if limit is not None:
                stmt = stmt.limit(limit)

            return [orm.to_domain() for orm in session.execute(stmt).scalars().all()]
        finally:
            session.close()
