from datetime import datetime, timezone
from uuid import uuid4

import pytest

from src.telecare.domain.models.account import Account, AccountRole
from src.telecare.domain.models.review import ReviewDecision
from src.telecare.domain.models.soap_report import ReviewAction, ReviewEntry, ReviewStatus
from src.telecare.infra.db import inmemory as repos
from src.telecare.infra.db.bootstrap import install_sql_repositories
from src.telecare.infra.db.models import Base
from src.telecare.infra.db.repositories import ReportFilter, ReportOrder, statuses
from src.telecare.infra.db.session import create_engine_for_url, create_sqlalchemy_session_factory
from src.telecare.infra.db.sql_accounts import SqlAccountRepository
from src.telecare.infra.db.sql_reports import SqlClinicalSessionRepository, SqlReportRepository
from src.telecare.services.drafting.backends import DemoDraftingBackend
from src.telecare.services.drafting.service import ReportDraftingService
from src.telecare.services.review.state_machine import ReportReviewService
from tests.telecare.factories import HEADACHE_TRANSCRIPT, build_report, hours_ago, run_concurrently


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'telecare.db'}")
    Base.metadata.create_all(engine)
    yield create_sqlalchemy_session_factory(engine)
    engine.dispose()


def test_report_round_trips_through_sql(session_factory):
    reports = SqlReportRepository(session_factory)
    report = build_report(
        review_history=[
            ReviewEntry(
                doctor_id="doc-1",
                action=ReviewAction.REQUEST_CHANGES,
                feedback="Add vitals",
                star_rating=3,
                regenerated=True,
                created_at=datetime.now(timezone.utc),
            )
        ]
    )

    assert reports.add(report) is True
    stored = reports.get(report.id)

    assert stored.sections() == report.sections()
    assert stored.priority == report.priority
    assert stored.review_history[0].feedback == "Add vitals"
    assert reports.get_by_session(report.session_id).id == report.id


def test_second_report_for_session_is_refused(session_factory):
    reports = SqlReportRepository(session_factory)
    first = build_report()
    duplicate = build_report(session_id=first.session_id)

    assert reports.add(first) is True
    assert reports.add(duplicate) is False
    assert reports.get(duplicate.id) is None


def test_conditional_update_checks_status_and_version(session_factory):
    reports = SqlReportRepository(session_factory)
    report = build_report()
    reports.add(report)

    claimed = reports.conditional_update(
        report.id,
        expected_status=ReviewStatus.PENDING,
        expected_version=0,
        fields={"review_status": ReviewStatus.IN_REVIEW, "assigned_doctor_id": "doc-1"},
    )
    assert claimed is not None
    assert claimed.version == 1
    assert claimed.assigned_doctor_id == "doc-1"

    assert (
        reports.conditional_update(
            report.id,
            expected_status=ReviewStatus.PENDING,
            fields={"assigned_doctor_id": "doc-2"},
        )
        is None
    )
    assert (
        reports.conditional_update(
            report.id,
            expected_status=ReviewStatus.IN_REVIEW,
            expected_version=0,
            fields={"assigned_doctor_id": "doc-2"},
        )
        is None
    )
    assert reports.get(report.id).assigned_doctor_id == "doc-1"


def test_find_many_orders_pending_by_priority(session_factory):
    reports = SqlReportRepository(session_factory)
    routine = build_report(severity="moderate", created_at=hours_ago(1))
    emergency = build_report(severity="critical", created_at=hours_ago(8))
    urgent = build_report(severity="high", created_at=hours_ago(3))
    other_patient = build_report(patient_id="patient-2", severity="critical")
    for report in (routine, emergency, urgent, other_patient):
        reports.add(report)

    found = reports.find_many(
        ReportFilter(patient_id="patient-1", statuses=statuses(ReviewStatus.PENDING)),
        order=ReportOrder.PRIORITY_THEN_NEWEST,
    )

    assert [r.id for r in found] == [emergency.id, urgent.id, routine.id]


def test_account_repository_upserts_and_matches_email_case_insensitively(session_factory):
    accounts = SqlAccountRepository(session_factory)
    account = Account(id=uuid4(), email="Sam@Example.com", created_at=datetime.now(timezone.utc))
    accounts.save(account)

    accounts.save(account.model_copy(update={"role": AccountRole.DOCTOR, "has_completed_doctor_profile": True}))

    stored = accounts.get_by_email("sam@example.com")
    assert stored.id == account.id
    assert stored.role == AccountRole.DOCTOR
    assert stored.has_completed_doctor_profile is True


def test_account_conditional_update_respects_completion_flag(session_factory):
    accounts = SqlAccountRepository(session_factory)
    account = Account(id=uuid4(), email="lee@example.com", created_at=datetime.now(timezone.utc))
    accounts.save(account)

    completed = accounts.conditional_update(
        account.id,
        unset_flag="has_completed_doctor_profile",
        fields={"role": AccountRole.PATIENT, "has_completed_patient_profile": True},
    )
    refused = accounts.conditional_update(
        account.id,
        unset_flag="has_completed_patient_profile",
        fields={"role": AccountRole.DOCTOR, "has_completed_doctor_profile": True},
    )

    assert completed.role == AccountRole.PATIENT
    assert refused is None
    missing = accounts.conditional_update(
        uuid4(), unset_flag="has_completed_doctor_profile", fields={"role": AccountRole.PATIENT}
    )
    assert missing is None
    stored = accounts.get(account.id)
    assert stored.role == AccountRole.PATIENT
    assert stored.has_completed_doctor_profile is False


def test_session_repository_counts_per_patient(session_factory):
    sessions = SqlClinicalSessionRepository(session_factory)
    service = ReportDraftingService(session_repository=sessions, backend=DemoDraftingBackend())
    created = service.create_session(patient_id="patient-1", transcript=HEADACHE_TRANSCRIPT)
    service.create_session(patient_id="patient-2", transcript=[])

    assert sessions.get(created.id).transcript == HEADACHE_TRANSCRIPT
    assert sessions.count_for_patient("patient-1") == 1


def test_review_workflow_on_sql_repositories(tmp_path):
    install_sql_repositories(f"sqlite:///{tmp_path / 'workflow.db'}")
    assert isinstance(repos.report_repository, SqlReportRepository)

    drafting = ReportDraftingService(backend=DemoDraftingBackend())
    session = drafting.create_session(patient_id="patient-1", transcript=HEADACHE_TRANSCRIPT)
    report = drafting.draft_report(session.id)
    review = ReportReviewService()

    results = run_concurrently(lambda i: review.claim(report.id, f"doc-{i}"), 4)
    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1

    doctor_id = winners[0].assigned_doctor_id
    outcome = review.decide(report.id, doctor_id, ReviewDecision(action=ReviewAction.APPROVE))

    assert outcome.final_status == ReviewStatus.APPROVED
    assert repos.report_repository.get(report.id).reviewed_at is not None
