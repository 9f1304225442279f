from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class AccountORM(Base):
    __tablename__ = "accounts"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    role: Mapped[str | None] = mapped_column(String, nullable=True)
    has_completed_patient_profile: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_completed_doctor_profile: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, account: "Account") -> "AccountORM":  # type: ignore[name-defined]
        return cls(
            id=account.id,
            email=account.email,
            role=account.role.value if account.role is not None else None,
            has_completed_patient_profile=account.has_completed_patient_profile,
            has_completed_doctor_profile=account.has_completed_doctor_profile,
            created_at=account.created_at,
        )

    def to_domain(self) -> "Account":  # type: ignore[name-defined]
        from src.telecare.domain.models.account import Account, AccountRole

        return Account(
            id=self.id,
            email=self.email,
            role=AccountRole(self.role) if self.role else None,
            has_completed_patient_profile=self.has_completed_patient_profile,
            has_completed_doctor_profile=self.has_completed_doctor_profile,
            created_at=self.created_at,
        )


class ClinicalSessionORM(Base):
    __tablename__ = "clinical_sessions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    patient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    chief_complaint: Mapped[str | None] = mapped_column(String, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Interview turns stored as a JSON array of {"role", "content"} objects.
    transcript: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, session: "ClinicalSession") -> "ClinicalSessionORM":  # type: ignore[name-defined]
        return cls(
            id=session.id,
            patient_id=session.patient_id,
            chief_complaint=session.chief_complaint,
            summary=session.summary,
            transcript=[turn.model_dump(mode="json") for turn in session.transcript],
            created_at=session.created_at,
        )

    def to_domain(self) -> "ClinicalSession":  # type: ignore[name-defined]
        from src.telecare.domain.models.clinical_session import ClinicalSession

        return ClinicalSession.model_validate(
            {
                "id": self.id,
                "patient_id": self.patient_id,
                "chief_complaint": self.chief_complaint,
                "summary": self.summary,
                "transcript": self.transcript or [],
                "created_at": self.created_at,
            }
        )


# Report fields persisted as JSON documents rather than flat columns.
REPORT_JSON_FIELDS = ("subjective", "objective", "assessment", "plan", "red_flags", "review_history")


class SOAPReportORM(Base):
    __tablename__ = "soap_reports"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    # unique=True enforces one report per clinical session.
    session_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, unique=True)
    patient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    subjective: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    objective: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    assessment: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    plan: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    department: Mapped[str] = mapped_column(String, nullable=False)
    priority: Mapped[str] = mapped_column(String, nullable=False)
    triage_label: Mapped[str] = mapped_column(String, nullable=False)
    red_flags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    review_status: Mapped[str] = mapped_column(String, nullable=False, index=True)
    assigned_doctor_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    doctor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    prescription: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    regeneration_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    review_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    @staticmethod
    def column_values(report_fields: dict[str, Any]) -> dict[str, Any]:
        """Convert domain field values into column values.

        Used both for inserts and for the SET clause of conditional updates.
        """

        from enum import Enum

        from pydantic import BaseModel

        values: dict[str, Any] = {}
        for key, value in report_fields.items():
            if isinstance(value, BaseModel):
                value = value.model_dump(mode="json")
            elif isinstance(value, Enum):
                value = value.value
            elif key in REPORT_JSON_FIELDS and isinstance(value, list):
                value = [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
            values[key] = value
        return values

    @classmethod
    def from_domain(cls, report: "SOAPReport") -> "SOAPReportORM":  # type: ignore[name-defined]
        fields = {name: getattr(report, name) for name in type(report).model_fields}
        return cls(**cls.column_values(fields))

    def to_domain(self) -> "SOAPReport":  # type: ignore[name-defined]
        from src.telecare.domain.models.soap_report import SOAPReport

        return SOAPReport.model_validate(
            {column.key: getattr(self, column.key) for column in self.__table__.columns}
        )
