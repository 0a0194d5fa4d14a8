from datetime import datetime

import pytest

from geoqueue.extensions import db
from geoqueue.models import AuditLog, PrintAttempt
from geoqueue.services import acceptance, job_store, print_queue
from geoqueue.services.errors import AlreadyDecided, Forbidden, InvalidState, NotFound, NotReady, ValidationError
from geoqueue.services.progress_channel import get_progress_channel
from tests.conftest import bearer, login, submit

BASE = "/api/print-queue"


def _finished_job(seed) -> int:
    job = submit(seed)
    job_store.claim_next_job()
    _, attempt = job_store.report_result(job.id, True)
    return attempt.id


@pytest.fixture
def attempt_id(app, seed):
    with app.app_context():
        return _finished_job(seed)


# --- servicios ---

def test_progress_bounds(ctx, seed):
    attempt_id = _finished_job(seed)

    for bad in (-1, 100.5, "50", None, True):
        with pytest.raises(ValidationError):
            print_queue.record_progress(attempt_id, bad)

    attempt = print_queue.record_progress(attempt_id, 42)
    assert attempt.progress == 42.0
    assert attempt.progress_reported_at is not None


def test_progress_unknown_attempt(ctx):
    with pytest.raises(NotFound):
        print_queue.record_progress(55, 10)


def test_outcome_rejects_inverted_times(ctx, seed):
    attempt_id = _finished_job(seed)

    with pytest.raises(ValidationError):
        print_queue.record_print_outcome(
            attempt_id,
            started_at=datetime(2024, 5, 1, 12, 0),
            completed_at=datetime(2024, 5, 1, 11, 0),
        )

    attempt = print_queue.record_print_outcome(
        attempt_id,
        started_at=datetime(2024, 5, 1, 10, 0),
        completed_at=datetime(2024, 5, 1, 11, 0),
        succeeded=True,
    )
    assert attempt.succeeded is True
    assert attempt.acceptance is None


def test_acceptance_requires_complete_print(ctx, seed):
    attempt_id = _finished_job(seed)
    print_queue.record_progress(attempt_id, 99)

    with pytest.raises(NotReady) as exc:
        acceptance.decide(attempt_id, True, org_id=seed.org_id)
    assert isinstance(exc.value, InvalidState)
    assert db.session.get(PrintAttempt, attempt_id).acceptance is None


def test_acceptance_is_one_shot(ctx, seed):
    attempt_id = _finished_job(seed)
    print_queue.record_progress(attempt_id, 100)

    attempt = acceptance.decide(attempt_id, False, org_id=seed.org_id, note="warped edge", user_id=seed.member_id)
    assert attempt.acceptance_label == "rejected"
    assert attempt.note == "warped edge"

    with pytest.raises(AlreadyDecided):
        acceptance.decide(attempt_id, True, org_id=seed.org_id)

    assert db.session.get(PrintAttempt, attempt_id).acceptance is False
    assert AuditLog.query.filter_by(action="PRINT_REJECTED", entity_id=attempt_id).count() == 1


def test_acceptance_without_note_keeps_existing_note(ctx, seed):
    attempt_id = _finished_job(seed)
    print_queue.record_print_outcome(attempt_id, note="printed on unit 2")
    print_queue.record_progress(attempt_id, 100)

    attempt = acceptance.decide(attempt_id, True, org_id=seed.org_id)

    assert attempt.acceptance is True
    assert attempt.note == "printed on unit 2"


def test_acceptance_from_other_org_is_forbidden(ctx, seed):
    attempt_id = _finished_job(seed)
    print_queue.record_progress(attempt_id, 100)

    with pytest.raises(Forbidden):
        acceptance.decide(attempt_id, True, org_id=seed.other_org_id)
    with pytest.raises(Forbidden):
        acceptance.decide(attempt_id, True, org_id=None)


def test_acceptance_value_must_be_boolean(ctx, seed):
    attempt_id = _finished_job(seed)
    with pytest.raises(ValidationError):
        acceptance.decide(attempt_id, "yes", org_id=seed.org_id)


# --- HTTP ---

def test_printer_reports_progress_and_viewers_hear_it(app, client, seed, attempt_id):
    with app.app_context():
        sub = get_progress_channel().subscribe()

    resp = client.put(f"{BASE}/{attempt_id}/progress", json={"progress": 64.5}, headers=bearer(seed.printer_key))

    assert resp.status_code == 200
    assert resp.get_json()["progress"] == 64.5
    message = sub.next_message(timeout=1)
    assert f'"id": {attempt_id}' in message
    assert '"progress": 64.5' in message


def test_progress_rejects_bad_value(client, seed, attempt_id):
    resp = client.put(f"{BASE}/{attempt_id}/progress", json={"progress": 101}, headers=bearer(seed.printer_key))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid progress value"


def test_agent_key_cannot_report_progress(client, seed, attempt_id):
    resp = client.put(f"{BASE}/{attempt_id}/progress", json={"progress": 10}, headers=bearer(seed.agent_key))
    assert resp.status_code == 403


def test_outcome_and_logs(client, seed, attempt_id):
    resp = client.put(f"{BASE}/{attempt_id}", headers=bearer(seed.printer_key), json={
        "print_started_at": "2024-05-01T10:00:00Z",
        "print_completed_at": "2024-05-01T11:30:00Z",
        "succeeded": True,
        "note": "unit 2",
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["print_started_at"].startswith("2024-05-01T10:00:00")
    assert body["succeeded"] is True

    bad = client.put(f"{BASE}/{attempt_id}", json={"print_started_at": "yesterday"}, headers=bearer(seed.printer_key))
    assert bad.status_code == 400

    logs = client.put(f"{BASE}/{attempt_id}/logs", json={"logs": "layer 1..."}, headers=bearer(seed.printer_key))
    assert logs.status_code == 200
    assert client.put(f"{BASE}/{attempt_id}/logs", json={"logs": 5}, headers=bearer(seed.printer_key)).status_code == 400


def test_member_lists_and_decides(client, seed, attempt_id):
    client.put(f"{BASE}/{attempt_id}/progress", json={"progress": 100}, headers=bearer(seed.printer_key))
    login(client, "member")

    rows = client.get(BASE).get_json()["rows"]
    assert [r["id"] for r in rows] == [attempt_id]
    assert rows[0]["acceptance"] == "undecided"

    resp = client.post(f"{BASE}/{attempt_id}/acceptance", json={"accept": True})
    assert resp.status_code == 200
    assert resp.get_json()["acceptance"] == "accepted"

    again = client.post(f"{BASE}/{attempt_id}/acceptance", json={"accept": False})
    assert again.status_code == 409
    assert again.get_json()["code"] == "already_decided"


def test_decide_before_print_completes_is_409(client, seed, attempt_id):
    login(client, "member")
    resp = client.post(f"{BASE}/{attempt_id}/acceptance", json={"accept": True})

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "not_ready"


def test_outsider_cannot_see_or_decide(client, seed, attempt_id):
    login(client, "outsider")

    assert client.get(BASE).get_json()["rows"] == []
    assert client.get(f"{BASE}/{attempt_id}").status_code == 403
    assert client.post(f"{BASE}/{attempt_id}/acceptance", json={"accept": True}).status_code == 403
