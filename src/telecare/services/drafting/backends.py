from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol

from src.telecare.config import settings
from src.telecare.domain.models.soap_report import SOAPSections
from src.telecare.services.triage.classifier import DEPARTMENT_IDS


class DraftingError(Exception):
    """The drafting model could not produce a usable draft."""


@dataclass(frozen=True)
class DraftingContext:
    """Everything the drafting model sees for one call.

    ``prior_sections`` and ``feedback`` are only set when regenerating an
    existing report.
    """

    transcript: str
    summary: str = ""
    chief_complaint: Optional[str] = None
    prior_sections: Optional[SOAPSections] = None
    feedback: Optional[str] = None
    rejection_reason: Optional[str] = None
    star_rating: Optional[int] = None
    revision: int = 0


class DraftingBackend(Protocol):
    """Protocol for the external report drafting model.

    Returns the raw section payload; callers validate it against
    :class:`SOAPSections` before persisting anything.
    """

    def draft(self, context: DraftingContext) -> Mapping[str, Any]:  # pragma: no cover - interface
        raise NotImplementedError


_SYMPTOM_KEYWORDS = [
    "chest pain",
    "shortness of breath",
    "difficulty breathing",
    "fever",
    "cough",
    "headache",
    "dizziness",
    "nausea",
    "vomiting",
    "abdominal pain",
    "rash",
    "fatigue",
    "back pain",
]

_EMERGENCY_KEYWORDS = ["chest pain", "difficulty breathing", "unconscious", "severe bleeding", "stroke"]
_URGENT_KEYWORDS = ["high fever", "severe pain", "persistent vomiting", "worsening", "sudden onset"]

_DEPARTMENT_KEYWORDS: Dict[str, List[str]] = {
    "cardiology": ["chest pain", "palpitation", "heart"],
    "pulmonology": ["cough", "shortness of breath", "difficulty breathing", "wheezing"],
    "neurology": ["headache", "dizziness", "seizure", "numbness"],
    "gastroenterology": ["abdominal pain", "nausea", "vomiting", "diarrhea"],
    "dermatology": ["rash", "itching", "skin"],
    "orthopedics": ["back pain", "joint", "fracture"],
}


class DemoDraftingBackend:
    """Deterministic, offline drafting backend used for tests and local runs.

    First drafts are built from keyword matches over the transcript.
    Regenerations revise every section of the prior draft and escalate
    severity when the feedback asks for it, so the triage refresh after a
    regeneration is observable without a real model.
    """

    def draft(self, context: DraftingContext) -> Mapping[str, Any]:
        if context.prior_sections is not None:
            return self._revise(context)
        return self._first_draft(context)

    def _first_draft(self, context: DraftingContext) -> Dict[str, Any]:
        text = f"{context.summary}\n{context.transcript}".lower()
        symptoms = [kw for kw in _SYMPTOM_KEYWORDS if kw in text]
        red_flags = [f"Reported {kw}" for kw in _EMERGENCY_KEYWORDS if kw in text]

        if red_flags:
            severity = "critical"
        elif any(kw in text for kw in _URGENT_KEYWORDS):
            severity = "high"
        elif symptoms:
            severity = "moderate"
        else:
            severity = "initial"

        department = None
        for name, keywords in _DEPARTMENT_KEYWORDS.items():
            if any(kw in text for kw in keywords):
                department = name
                break

        chief_complaint = context.chief_complaint or (symptoms[0] if symptoms else "General consultation")
        urgency = {"critical": "emergency", "high": "urgent", "moderate": "standard"}.get(severity, "routine")

        return {
            "subjective": {
                "chief_complaint": chief_complaint,
                "symptoms": symptoms,
                "patient_history": context.summary or "No prior history recorded.",
                "patient_narrative": context.transcript or "No narrative captured.",
                "red_flags": red_flags,
            },
            "objective": {
                "reported_symptoms": symptoms,
                "severity": severity,
                "confidence_level": 60.0 if symptoms else 30.0,
                "vital_signs": {},
            },
            "assessment": {
                "primary_diagnosis": f"Suspected {chief_complaint}".strip(),
                "differential_diagnosis": symptoms[1:3],
                "severity": severity,
                "confidence": 55.0 if symptoms else 25.0,
                "ai_analysis": "Demo draft generated from interview keywords.",
                "department": department,
                "medical_sources": [],
            },
            "plan": {
                "recommendations": ["Review by physician"],
                "tests_needed": [],
                "specialist_referral": department,
                "follow_up_needed": severity in {"critical", "high"},
                "urgency": urgency,
            },
        }

    def _revise(self, context: DraftingContext) -> Dict[str, Any]:
        assert context.prior_sections is not None
        draft = context.prior_sections.model_dump(mode="json")
        feedback = context.feedback or context.rejection_reason or "no details given"
        revision = context.revision
        lowered = feedback.lower()

        draft["subjective"]["patient_history"] = (
            f"{draft['subjective']['patient_history']} (revision {revision} reviewed against physician feedback)"
        )
        draft["objective"]["vital_signs"] = {
            **draft["objective"]["vital_signs"],
            "documentation_revision": str(revision),
        }
        draft["assessment"]["ai_analysis"] = (
            f"{draft['assessment']['ai_analysis']}\nRevision {revision}: {feedback}"
        )
        draft["plan"]["recommendations"] = [
            *draft["plan"]["recommendations"],
            f"Physician guidance (revision {revision}): {feedback}",
        ]

        if "emergency" in lowered or "critical" in lowered:
            draft["assessment"]["severity"] = "critical"
            draft["plan"]["urgency"] = "emergency"
        elif "urgent" in lowered:
            draft["assessment"]["severity"] = "high"
            draft["plan"]["urgency"] = "urgent"

        return draft


_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class LLMDraftingBackend:
    """Drafting backend that calls an external LLM via the OpenAI API.

    This backend is optional and only used when DRAFTING_BACKEND=llm. It asks
    for a full replacement of all four sections as compact JSON. Any client
    error or unparsable output is raised as :class:`DraftingError`; there is no
    fallback draft.
    """

    def __init__(self, model: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self._model = model or settings.llm_model
        self._timeout = timeout if timeout is not None else settings.drafting_timeout_seconds

    def _prompt(self, context: DraftingContext) -> str:
        schema_hint = (
            "Respond ONLY as compact JSON with keys 'subjective', 'objective', 'assessment' and 'plan'. "
            "subjective: chief_complaint, symptoms[], patient_history, patient_narrative, red_flags[]. "
            "objective: reported_symptoms[], severity, confidence_level (0-100), vital_signs{}. "
            "assessment: primary_diagnosis, differential_diagnosis[], severity, confidence (0-100), "
            "ai_analysis, department, medical_sources[]. "
            "plan: recommendations[], tests_needed[], specialist_referral, follow_up_needed, urgency. "
            "severity is one of critical, high, moderate, initial, normal; "
            "urgency is one of emergency, urgent, standard, routine. "
            f"department is one of {', '.join(sorted(DEPARTMENT_IDS))}. "
            "Do not include markdown or explanations."
        )
        parts = [
            "You are a clinical documentation assistant drafting a SOAP report for physician review.",
            schema_hint,
            f"Interview summary:\n{context.summary}",
            f"Transcript:\n{context.transcript}",
        ]
        if context.prior_sections is not None:
            parts.append(
                "Regenerate the full report. The physician's feedback is authoritative; rewrite every "
                "section so it addresses the feedback."
            )
            parts.append(f"Current report:\n{context.prior_sections.model_dump_json()}")
            parts.append(f"Physician feedback: {context.feedback or ''}")
            parts.append(f"Rejection reason: {context.rejection_reason or ''}")
            if context.star_rating is not None:
                parts.append(f"Physician rating of the current report: {context.star_rating}/5")
        return "\n\n".join(parts)

    def draft(self, context: DraftingContext) -> Mapping[str, Any]:  # pragma: no cover - external service
        api_key = settings.openai_api_key
        if not api_key:
            raise DraftingError("OPENAI_API_KEY must be set to use LLMDraftingBackend")

        try:
            from openai import OpenAI, OpenAIError
        except ImportError as exc:
            raise DraftingError(
                "LLMDraftingBackend requires the 'openai' package. Install it with 'pip install openai'"
            ) from exc

        client = OpenAI(api_key=api_key, timeout=self._timeout, max_retries=0)

        try:
            response = client.responses.create(
                model=self._model,
                input=[{"role": "user", "content": self._prompt(context)}],
            )
        except OpenAIError as exc:
            raise DraftingError(f"Drafting model call failed: {exc}") from exc

        raw_text = response.output_text
        if not raw_text:
            raise DraftingError("Drafting model returned an empty response")

        match = _JSON_OBJECT.search(raw_text)
        if match is None:
            raise DraftingError("Drafting model response did not contain a JSON object")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise DraftingError("Drafting model returned malformed JSON") from exc
        if not isinstance(data, dict):
            raise DraftingError("Drafting model returned a non-object JSON payload")
        return data


def get_drafting_backend_from_env() -> DraftingBackend:
    """Select a drafting backend based on DRAFTING_BACKEND.

    Supports:
    - "demo" (default) – deterministic keyword-based drafts
    - "llm" – LLMDraftingBackend using an external LLM
    """

    backend_name = settings.drafting_backend.lower()
    if backend_name == "llm":
        return LLMDraftingBackend()
    return DemoDraftingBackend()
