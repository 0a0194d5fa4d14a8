from types import SimpleNamespace

import pytest

from geoqueue import create_app
from geoqueue.config import Config
from geoqueue.extensions import db
from geoqueue.models import ApiKey, Design, Organization, User
from geoqueue.models.api_key import PRINT_READ, PRINT_WRITE, QUEUE_READ, QUEUE_WRITE
from geoqueue.services import job_store

PASSWORD = "secret123"

SPLINT_SCHEMA = [
    {"InputName": "width", "InputDescription": "Wrist width (mm)", "InputType": "Float", "NumberMin": 1, "NumberMax": 10},
    {"InputName": "length", "InputDescription": "Forearm length (mm)", "InputType": "Float", "NumberMin": 1, "NumberMax": 300},
]


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STORAGE_PROVIDER = "local"
    LOG_LEVEL = "DEBUG"


def make_app(tmp_path, **overrides):
    attrs = {"LOCAL_STORAGE_DIR": str(tmp_path / "blobs"), **overrides}
    return create_app(type("LocalTestingConfig", (TestingConfig,), attrs))


def seed_data(app) -> SimpleNamespace:
    with app.app_context():
        org = Organization(name="Acme Orthotics")
        other = Organization(name="Other Clinic")
        db.session.add_all([org, other])
        db.session.flush()

        users = {}
        for username, role, org_id in (
            ("admin", "admin", org.id),
            ("member", "member", org.id),
            ("outsider", "member", other.id),
        ):
            u = User(username=username, role=role, organization_id=org_id, is_active=True)
            u.set_password(PASSWORD)
            db.session.add(u)
            users[username] = u

        design = Design(name="Wrist Splint", algorithm_name="wrist_v2", parameter_schema=SPLINT_SCHEMA, schema_version=3)
        finger = Design(name="Finger Splint", algorithm_name="finger_v1", parameter_schema=[], schema_version=1)
        retired = Design(name="Old Splint", algorithm_name="legacy", parameter_schema=[], is_enabled=False)
        db.session.add_all([design, finger, retired])
        db.session.flush()

        _, agent_key = ApiKey.issue("geo-processor", [QUEUE_READ, QUEUE_WRITE])
        _, printer_key = ApiKey.issue("printer", [PRINT_READ, PRINT_WRITE])
        _, viewer_key = ApiKey.issue("viewer", [QUEUE_READ])
        db.session.commit()

        return SimpleNamespace(
            org_id=org.id,
            other_org_id=other.id,
            admin_id=users["admin"].id,
            member_id=users["member"].id,
            outsider_id=users["outsider"].id,
            design_id=design.id,
            finger_design_id=finger.id,
            retired_design_id=retired.id,
            agent_key=agent_key,
            printer_key=printer_key,
            viewer_key=viewer_key,
        )


@pytest.fixture
def app(tmp_path):
    app = make_app(tmp_path)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seed(app):
    return seed_data(app)


@pytest.fixture
def ctx(app, seed):
    """App context for service-level tests (not combined with the test client)."""
    with app.app_context():
        yield app


def bearer(key: str) -> dict:
    return {"Authorization": f"Bearer {key}"}


def login(client, username: str, password: str = PASSWORD):
    resp = client.post("/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp


def submit(seed, width=5, length=120, design_id=None, **kwargs):
    """Submits a job; needs an active app context."""
    return job_store.submit_job(
        owner_org_id=seed.org_id,
        creator_id=seed.member_id,
        design_id=design_id or seed.design_id,
        parameters={"width": width, "length": length},
        **kwargs,
    )
