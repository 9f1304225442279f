from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List

from src.telecare.domain.models.soap_report import (
    Priority,
    SeverityLevel,
    SOAPSections,
    TriageLabel,
)

GENERAL_MEDICINE = "general_medicine"

DEPARTMENT_IDS = frozenset(
    {
        GENERAL_MEDICINE,
        "cardiology",
        "neurology",
        "orthopedics",
        "pediatrics",
        "dermatology",
        "psychiatry",
        "gynecology",
        "ophthalmology",
        "ent",
        "gastroenterology",
        "pulmonology",
        "emergency",
    }
)

# Common spellings the drafting model produces for the ids above.
_DEPARTMENT_ALIASES: Dict[str, str] = {
    "general": GENERAL_MEDICINE,
    "general_practice": GENERAL_MEDICINE,
    "internal_medicine": GENERAL_MEDICINE,
    "family_medicine": GENERAL_MEDICINE,
    "ear_nose_throat": "ent",
    "ear_nose_and_throat": "ent",
    "otolaryngology": "ent",
    "otorhinolaryngology": "ent",
    "orthopaedics": "orthopedics",
    "paediatrics": "pediatrics",
    "gynaecology": "gynecology",
    "obstetrics_and_gynecology": "gynecology",
    "obstetrics_gynecology": "gynecology",
    "obgyn": "gynecology",
    "emergency_medicine": "emergency",
    "respiratory": "pulmonology",
    "respiratory_medicine": "pulmonology",
    "gastroenterology_and_hepatology": "gastroenterology",
    "mental_health": "psychiatry",
    "eye": "ophthalmology",
    "skin": "dermatology",
}

_SEVERITY_TO_TRIAGE: Dict[SeverityLevel, TriageLabel] = {
    SeverityLevel.CRITICAL: TriageLabel.EMERGENCY,
    SeverityLevel.HIGH: TriageLabel.URGENT,
    SeverityLevel.MODERATE: TriageLabel.STANDARD,
    SeverityLevel.INITIAL: TriageLabel.ROUTINE,
    SeverityLevel.NORMAL: TriageLabel.ROUTINE,
}

_TRIAGE_TO_PRIORITY: Dict[TriageLabel, Priority] = {
    TriageLabel.EMERGENCY: Priority.URGENT,
    TriageLabel.URGENT: Priority.HIGH,
    TriageLabel.STANDARD: Priority.NORMAL,
    TriageLabel.ROUTINE: Priority.NORMAL,
}


@dataclass(frozen=True)
class TriageResult:
    department: str
    priority: Priority
    triage_label: TriageLabel
    red_flags: List[str] = field(default_factory=list)


def normalize_department(value: str) -> str:
    """Map a free-form department name onto one of :data:`DEPARTMENT_IDS`.

    "General Medicine" becomes "general_medicine" and "Ear, Nose & Throat"
    becomes "ent". Anything outside the known departments is routed to
    general medicine so dashboards only ever group by known ids.
    """

    slug = re.sub(r"[^a-z0-9]+", "_", value.strip().lower()).strip("_")
    slug = _DEPARTMENT_ALIASES.get(slug, slug)
    return slug if slug in DEPARTMENT_IDS else GENERAL_MEDICINE


def classify(sections: SOAPSections) -> TriageResult:
    """Derive department, priority, triage label and red flags from a report.

    Deterministic and side-effect free. The assessment severity alone decides
    the triage label; red flags are copied verbatim from the subjective
    section. Must be re-run whenever the sections change.
    """

    triage_label = _SEVERITY_TO_TRIAGE[sections.assessment.severity]

    department = normalize_department(sections.assessment.department or "")

    return TriageResult(
        department=department,
        priority=_TRIAGE_TO_PRIORITY[triage_label],
        triage_label=triage_label,
        red_flags=list(sections.subjective.red_flags),
    )
