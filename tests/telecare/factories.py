from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from src.telecare.domain.models.account import Account, AccountRole
from src.telecare.domain.models.clinical_session import InterviewTurn
from src.telecare.domain.models.soap_report import SOAPReport, SOAPSections
from src.telecare.infra.db import inmemory as repos
from src.telecare.services.drafting.backends import DemoDraftingBackend, DraftingContext, DraftingError
from src.telecare.services.triage.classifier import classify


class RecordingBackend:
    """Demo backend that remembers every context it was called with."""

    def __init__(self) -> None:
        self.calls: List[DraftingContext] = []
        self._demo = DemoDraftingBackend()

    def draft(self, context: DraftingContext) -> Mapping[str, Any]:
        self.calls.append(context)
        return self._demo.draft(context)


class SlowBackend:
    def __init__(self, delay: float) -> None:
        self.delay = delay

    def draft(self, context: DraftingContext) -> Mapping[str, Any]:
        time.sleep(self.delay)
        return DemoDraftingBackend().draft(context)


class FailingBackend:
    def draft(self, context: DraftingContext) -> Mapping[str, Any]:
        raise DraftingError("upstream model unavailable")


class CrashingBackend:
    """Fails the way a client library does, without wrapping its error."""

    def draft(self, context: DraftingContext) -> Mapping[str, Any]:
        raise ConnectionError("connection reset by peer")


class EchoBackend:
    """Returns the prior sections untouched."""

    def draft(self, context: DraftingContext) -> Mapping[str, Any]:
        return context.prior_sections.model_dump(mode="json")


class StaticBackend:
    def __init__(self, payload: Mapping[str, Any]) -> None:
        self.payload = payload

    def draft(self, context: DraftingContext) -> Mapping[str, Any]:
        return self.payload


def sections_payload(
    *,
    severity: str = "moderate",
    department: Optional[str] = None,
    red_flags: Optional[List[str]] = None,
    chief_complaint: str = "Headache",
) -> Dict[str, Any]:
    return {
        "subjective": {
            "chief_complaint": chief_complaint,
            "symptoms": ["headache"],
            "patient_history": "No relevant history.",
            "patient_narrative": "Headache for two days.",
            "red_flags": red_flags or [],
        },
        "objective": {
            "reported_symptoms": ["headache"],
            "severity": severity,
            "confidence_level": 70,
            "vital_signs": {},
        },
        "assessment": {
            "primary_diagnosis": "Tension headache",
            "differential_diagnosis": ["Migraine"],
            "severity": severity,
            "confidence": 65,
            "ai_analysis": "Pattern consistent with tension-type headache.",
            "department": department,
            "medical_sources": [],
        },
        "plan": {
            "recommendations": ["Hydration", "Rest"],
            "tests_needed": [],
            "specialist_referral": None,
            "follow_up_needed": False,
            "urgency": "standard",
        },
    }


def build_report(
    *,
    patient_id: str = "patient-1",
    severity: str = "moderate",
    created_at: Optional[datetime] = None,
    **overrides: Any,
) -> SOAPReport:
    """Build a pending report with triage fields derived the usual way."""

    sections = SOAPSections.model_validate(sections_payload(severity=severity))
    triage = classify(sections)
    created = created_at or datetime.now(timezone.utc)
    data: Dict[str, Any] = {
        "id": uuid4(),
        "session_id": uuid4(),
        "patient_id": patient_id,
        "subjective": sections.subjective,
        "objective": sections.objective,
        "assessment": sections.assessment,
        "plan": sections.plan,
        "department": triage.department,
        "priority": triage.priority,
        "triage_label": triage.triage_label,
        "red_flags": triage.red_flags,
        "created_at": created,
        "updated_at": created,
    }
    data.update(overrides)
    return SOAPReport(**data)


def hours_ago(hours: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=hours)


HEADACHE_TRANSCRIPT = [
    InterviewTurn(role="assistant", content="What brings you in today?"),
    InterviewTurn(role="patient", content="I have had a headache and some dizziness since yesterday."),
]


def make_account(role: Optional[AccountRole] = None, **flags: bool) -> Account:
    account = Account(
        id=uuid4(),
        email=f"{uuid4().hex[:8]}@example.com",
        role=role,
        created_at=datetime.now(timezone.utc),
        **flags,
    )
    repos.account_repository.save(account)
    return account


def run_concurrently(func, count: int) -> List[Any]:
    """Run ``func(i)`` on ``count`` threads released together; return results or exceptions."""

    barrier = threading.Barrier(count)
    results: List[Any] = [None] * count

    def _worker(index: int) -> None:
        barrier.wait()
        try:
            results[index] = func(index)
        except Exception as exc:  # noqa: BLE001 - collected for assertions
            results[index] = exc

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results
