from uuid import uuid4

from fastapi import status
from httpx import ASGITransport, AsyncClient

from src.telecare.main import app
from src.telecare.services.review.state_machine import review_service
from tests.telecare.factories import FailingBackend


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _as(account: dict) -> dict:
    return {"X-Account-ID": account["id"]}


async def _signup(ac: AsyncClient, role: str, email: str | None = None) -> dict:
    resp = await ac.post("/api/v1/accounts/", json={"email": email or f"{uuid4().hex[:8]}@example.com", "role": role})
    assert resp.status_code == status.HTTP_201_CREATED
    account = resp.json()
    resp = await ac.post("/api/v1/accounts/me/profile-completion", json={"role": role}, headers=_as(account))
    assert resp.status_code == status.HTTP_200_OK
    return account


async def _submit_report(ac: AsyncClient, patient: dict, complaint: str = "headache and dizziness") -> dict:
    session_resp = await ac.post(
        "/api/v1/sessions/",
        json={
            "summary": complaint,
            "transcript": [
                {"role": "assistant", "content": "What brings you in today?"},
                {"role": "patient", "content": f"I have {complaint}."},
            ],
        },
        headers=_as(patient),
    )
    assert session_resp.status_code == status.HTTP_201_CREATED
    report_resp = await ac.post(f"/api/v1/sessions/{session_resp.json()['id']}/report", headers=_as(patient))
    assert report_resp.status_code == status.HTTP_201_CREATED
    return report_resp.json()


async def test_root_health_check():
    async with _client() as ac:
        response = await ac.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


async def test_v1_health_and_config():
    async with _client() as ac:
        health = await ac.get("/api/v1/health")
        config = await ac.get("/api/v1/system/config")
    assert health.json() == {"status": "ok", "version": "v1"}
    assert config.status_code == status.HTTP_200_OK
    assert config.json()["storage"] == "memory"
    assert config.json()["regeneration_rating_threshold"] == 2


async def test_patient_report_is_approved_and_visible_on_dashboard():
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        doctor = await _signup(ac, "doctor")
        report = await _submit_report(ac, patient)
        assert report["review_status"] == "pending"

        queue = await ac.get("/api/v1/dashboard/doctor", headers=_as(doctor))
        assert [s["id"] for s in queue.json()["pending"]] == [report["id"]]

        claim = await ac.put(f"/api/v1/reports/{report['id']}/claim", headers=_as(doctor))
        assert claim.status_code == status.HTTP_200_OK
        assert claim.json()["review_status"] == "in_review"

        decision = await ac.post(
            f"/api/v1/reports/{report['id']}/review",
            json={"action": "approve", "prescription": "Paracetamol 500mg", "star_rating": 5},
            headers=_as(doctor),
        )
        assert decision.status_code == status.HTTP_200_OK
        assert decision.json()["final_status"] == "approved"

        dashboard = await ac.get("/api/v1/dashboard/patient", headers=_as(patient))
        body = dashboard.json()
        assert [s["id"] for s in body["approved"]] == [report["id"]]
        assert body["approved"][0]["has_prescription"] is True
        assert body["reports_ready"] == 1

        stats = await ac.get("/api/v1/dashboard/doctor/stats", headers=_as(doctor))
        assert stats.json()["approved"] == 1


async def test_second_claim_returns_conflict_code():
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        first = await _signup(ac, "doctor")
        second = await _signup(ac, "doctor")
        report = await _submit_report(ac, patient)

        await ac.put(f"/api/v1/reports/{report['id']}/claim", headers=_as(first))
        resp = await ac.put(f"/api/v1/reports/{report['id']}/claim", headers=_as(second))

    assert resp.status_code == status.HTTP_409_CONFLICT
    assert resp.json()["code"] == "CONFLICT"


async def test_review_of_pending_report_is_invalid_transition():
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        doctor = await _signup(ac, "doctor")
        report = await _submit_report(ac, patient)

        resp = await ac.post(
            f"/api/v1/reports/{report['id']}/review",
            json={"action": "approve"},
            headers=_as(doctor),
        )

    assert resp.status_code == 422
    assert resp.json()["code"] == "INVALID_TRANSITION"


async def test_failed_regeneration_reports_bad_gateway(monkeypatch):
    monkeypatch.setattr(review_service.agent, "_backend", FailingBackend())
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        doctor = await _signup(ac, "doctor")
        report = await _submit_report(ac, patient)
        await ac.put(f"/api/v1/reports/{report['id']}/claim", headers=_as(doctor))

        resp = await ac.post(
            f"/api/v1/reports/{report['id']}/review",
            json={"action": "reject", "rejection_reason": "Wrong diagnosis", "star_rating": 1},
            headers=_as(doctor),
        )
        stored = await ac.get(f"/api/v1/reports/{report['id']}", headers=_as(doctor))

    assert resp.status_code == status.HTTP_502_BAD_GATEWAY
    assert resp.json()["code"] == "REGENERATION_FAILED"
    assert stored.json()["review_status"] == "rejected"


async def test_request_changes_returns_report_to_queue():
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        doctor = await _signup(ac, "doctor")
        report = await _submit_report(ac, patient)
        await ac.put(f"/api/v1/reports/{report['id']}/claim", headers=_as(doctor))

        resp = await ac.post(
            f"/api/v1/reports/{report['id']}/review",
            json={"action": "request_changes", "feedback": "This is urgent, escalate", "star_rating": 2},
            headers=_as(doctor),
        )
        stored = await ac.get(f"/api/v1/reports/{report['id']}", headers=_as(patient))

    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["regenerated"] is True
    body = stored.json()
    assert body["review_status"] == "pending"
    assert body["triage_label"] == "urgent"
    assert body["regeneration_count"] == 1


async def test_completed_patient_cannot_switch_to_doctor():
    async with _client() as ac:
        patient = await _signup(ac, "patient")

        resp = await ac.put("/api/v1/accounts/me/role", json={"role": "doctor"}, headers=_as(patient))
        check = await ac.get("/api/v1/accounts/me/role-check", headers=_as(patient))

    assert resp.status_code == status.HTTP_409_CONFLICT
    assert resp.json()["code"] == "ROLE_CONFLICT"
    assert check.json() == {"current_role": "patient", "is_patient": True, "is_doctor": False}


async def test_patients_cannot_see_each_others_reports():
    async with _client() as ac:
        owner = await _signup(ac, "patient")
        other = await _signup(ac, "patient")
        report = await _submit_report(ac, owner)

        own = await ac.get(f"/api/v1/reports/{report['id']}", headers=_as(owner))
        foreign = await ac.get(f"/api/v1/reports/{report['id']}", headers=_as(other))
        dashboard = await ac.get("/api/v1/dashboard/patient", headers=_as(other))

    assert own.status_code == status.HTTP_200_OK
    assert foreign.status_code == status.HTTP_404_NOT_FOUND
    assert dashboard.json()["pending"] == []


async def test_role_specific_endpoints():
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        report = await _submit_report(ac, patient)

        claim = await ac.put(f"/api/v1/reports/{report['id']}/claim", headers=_as(patient))
        anonymous = await ac.get("/api/v1/dashboard/patient")
        unknown = await ac.get("/api/v1/accounts/me", headers={"X-Account-ID": str(uuid4())})

    assert claim.status_code == status.HTTP_403_FORBIDDEN
    assert claim.json()["code"] == "FORBIDDEN"
    assert anonymous.status_code == status.HTTP_401_UNAUTHORIZED
    assert unknown.status_code == status.HTTP_401_UNAUTHORIZED


async def test_duplicate_draft_for_session_conflicts():
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        report = await _submit_report(ac, patient)

        resp = await ac.post(f"/api/v1/sessions/{report['session_id']}/report", headers=_as(patient))

    assert resp.status_code == status.HTTP_409_CONFLICT


async def test_malformed_review_is_bad_request():
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        doctor = await _signup(ac, "doctor")
        report = await _submit_report(ac, patient)
        await ac.put(f"/api/v1/reports/{report['id']}/claim", headers=_as(doctor))

        resp = await ac.post(
            f"/api/v1/reports/{report['id']}/review",
            json={"action": "reject", "star_rating": 1},
            headers=_as(doctor),
        )

    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["code"] == "VALIDATION_FAILED"


async def test_unparsable_review_payload_is_bad_request():
    async with _client() as ac:
        patient = await _signup(ac, "patient")
        doctor = await _signup(ac, "doctor")
        report = await _submit_report(ac, patient)
        await ac.put(f"/api/v1/reports/{report['id']}/claim", headers=_as(doctor))

        wrong_type = await ac.post(
            f"/api/v1/reports/{report['id']}/review",
            json={"action": "approve", "star_rating": "five"},
            headers=_as(doctor),
        )
        missing_action = await ac.post(f"/api/v1/reports/{report['id']}/review", json={}, headers=_as(doctor))

    for resp in (wrong_type, missing_action):
        assert resp.status_code == status.HTTP_400_BAD_REQUEST
        assert resp.json()["code"] == "VALIDATION_FAILED"
