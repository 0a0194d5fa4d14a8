import threading

import pytest

from geoqueue.extensions import db
from geoqueue.services import job_store
from tests.conftest import make_app, seed_data, submit


@pytest.fixture
def file_app(tmp_path):
    # Threads need a real file database; in-memory SQLite is one shared connection
    app = make_app(
        tmp_path,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{tmp_path / 'race.db'}",
        SQLALCHEMY_ENGINE_OPTIONS={"connect_args": {"check_same_thread": False, "timeout": 30}},
        CLAIM_MAX_ATTEMPTS=50,
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _claim_concurrently(app, workers: int) -> list:
    barrier = threading.Barrier(workers)
    results, errors = [], []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            try:
                barrier.wait()
                job = job_store.claim_next_job()
                with lock:
                    results.append(job.id if job else None)
            except Exception as exc:  # surfaced by the assert below
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert not errors, errors
    return results


def test_single_job_goes_to_exactly_one_worker(file_app):
    seed = seed_data(file_app)
    with file_app.app_context():
        job_id = submit(seed).id

    results = _claim_concurrently(file_app, workers=8)

    winners = [r for r in results if r is not None]
    assert winners == [job_id]
    assert results.count(None) == 7


def test_each_job_claimed_once_under_contention(file_app):
    seed = seed_data(file_app)
    with file_app.app_context():
        ids = {submit(seed).id for _ in range(3)}

    results = _claim_concurrently(file_app, workers=8)

    winners = [r for r in results if r is not None]
    assert sorted(winners) == sorted(ids)
    assert len(results) == 8
