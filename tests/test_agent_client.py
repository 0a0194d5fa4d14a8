from urllib.parse import urlsplit

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from geoqueue.agent_client import ProcessingAgentClient
from geoqueue.extensions import db
from geoqueue.models import ProcessingJob
from geoqueue.services.storage import InlineFile, RemoteFile
from tests.conftest import submit


class FlaskAdapter(BaseAdapter):
    """Routes requests.Session traffic into a Flask test client."""

    def __init__(self, client):
        super().__init__()
        self.client = client

    def send(self, request, **kwargs):
        parts = urlsplit(request.url)
        path = parts.path + (f"?{parts.query}" if parts.query else "")
        headers = {k: v for k, v in request.headers.items() if k.lower() != "content-length"}

        resp = self.client.open(path, method=request.method, headers=headers, data=request.body)

        out = requests.Response()
        out.status_code = resp.status_code
        out.headers = CaseInsensitiveDict(resp.headers)
        out._content = resp.data
        out.encoding = "utf-8"
        out.url = request.url
        out.request = request
        return out

    def close(self):
        pass


@pytest.fixture
def agent(client, seed):
    session = requests.Session()
    session.mount("http://geoqueue.test", FlaskAdapter(client))
    return ProcessingAgentClient("http://geoqueue.test/", seed.agent_key, session=session)


def _stored(app, job_id):
    with app.app_context():
        job = db.session.get(ProcessingJob, job_id)
        return job.status, job.get_file("geometry"), job.get_file("print")


def test_empty_queue_returns_none(agent):
    assert agent.next_job() is None


def test_full_cycle_with_streamed_files(app, agent, seed):
    with app.app_context():
        job_id = submit(seed).id

    job = agent.next_job()
    assert job["id"] == job_id
    assert agent.mark_started(job_id)["ok"] is True

    result = agent.report_result(
        job_id,
        True,
        log="sliced in 12s",
        files={"geometry": ("splint.stl", b"solid"), "print": ("splint.gcode", b"G1 X1")},
    )

    assert result["print_attempt"]["has_print_file"] is True
    status, geometry, printed = _stored(app, job_id)
    assert status == "SUCCEEDED"
    assert isinstance(geometry, RemoteFile)
    assert isinstance(printed, RemoteFile)


def test_report_without_files_is_form_encoded(app, agent, seed):
    with app.app_context():
        job_id = submit(seed).id
    agent.next_job()

    result = agent.report_result(job_id, False, log="Error: boom", error_message="boom")

    assert result["print_attempt"] is None
    assert _stored(app, job_id)[0] == "FAILED"


def test_legacy_report(app, agent, seed):
    with app.app_context():
        job_id = submit(seed).id
    agent.next_job()

    agent.report_result_legacy(job_id, True, files={"geometry": ("splint.stl", b"solid")})

    _, geometry, printed = _stored(app, job_id)
    assert geometry == InlineFile("splint.stl", b"solid")
    assert printed is None


def test_report_for_unclaimed_job_raises(app, agent, seed):
    with app.app_context():
        job_id = submit(seed).id

    with pytest.raises(requests.HTTPError):
        agent.report_result(job_id, True)


def test_http_failure_is_logged_before_raising(app, agent, seed, caplog):
    with app.app_context():
        job_id = submit(seed).id

    with caplog.at_level("WARNING", logger="geoqueue.agent_client"):
        with pytest.raises(requests.HTTPError):
            agent.report_result(job_id, True)

    [record] = [r for r in caplog.records if r.name == "geoqueue.agent_client"]
    assert f"result for job {job_id} failed with HTTP 409" in record.getMessage()
    assert "not_started" in record.getMessage()
