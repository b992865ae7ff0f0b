"""
Shared pytest fixtures for the CaseTrack test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - fake_s3: in-memory S3 client installed as the app's object store
    - client: Flask test client (function-scoped)
    - default_tenant / other_tenant: pre-created tenants
    - make_user / make_client / make_action: directory and action factories
    - http_adapter: requests-compatible adapter over the Flask test client
"""

from datetime import datetime, timezone
from urllib.parse import urlsplit

import pytest
from botocore.exceptions import ClientError

from casetrack import create_app
from casetrack.models import db as _db
from casetrack.services.storage_service import ObjectStore

TEST_BUCKET = "casetrack-test"


def _ensure_tenant(slug, name):
    from casetrack.models.tenant import Tenant
    t = Tenant.query.filter_by(slug=slug).first()
    if not t:
        t = Tenant(name=name, slug=slug)
        _db.session.add(t)
        _db.session.commit()
    return t


def api_headers(tenant_id, user_id=None):
    headers = {"X-Tenant-ID": str(tenant_id)}
    if user_id is not None:
        headers["X-User-ID"] = str(user_id)
    return headers


# ── Fake object store ────────────────────────────────────────────────────


class FakeS3Client:
    """Just enough of the boto3 S3 client for ObjectStore."""

    def __init__(self, page_size=None):
        self.objects = {}
        self.page_size = page_size
        self.fail_with = None
        self.calls = []

    def _maybe_fail(self, operation):
        self.calls.append(operation)
        if self.fail_with:
            raise ClientError({"Error": {"Code": self.fail_with, "Message": "boom"}}, operation)

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self._maybe_fail("PutObject")
        data = Body.read() if hasattr(Body, "read") else Body
        self.objects[Key] = {
            "body": data,
            "content_type": ContentType,
            "last_modified": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        }
        return {}

    def list_objects_v2(self, Bucket, Prefix, MaxKeys=1000, ContinuationToken=None):
        self._maybe_fail("ListObjectsV2")
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        size = min(MaxKeys, self.page_size or MaxKeys)
        start = int(ContinuationToken or 0)
        page = keys[start:start + size]
        truncated = start + size < len(keys)
        body = {
            "Contents": [
                {"Key": k, "Size": len(self.objects[k]["body"]),
                 "LastModified": self.objects[k]["last_modified"]}
                for k in page
            ],
            "IsTruncated": truncated,
        }
        if truncated:
            body["NextContinuationToken"] = str(start + size)
        return body

    def head_object(self, Bucket, Key):
        self._maybe_fail("HeadObject")
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": len(self.objects[Key]["body"])}

    def delete_object(self, Bucket, Key):
        self._maybe_fail("DeleteObject")
        self.objects.pop(Key, None)
        return {}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return f"https://s3.test/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture()
def fake_s3():
    return FakeS3Client()


@pytest.fixture(autouse=True)
def session(app, _setup_db, fake_s3):
    """Per-test: open app context, install the fake store, rollback + recreate after."""
    app.extensions["object_store"] = ObjectStore(fake_s3, TEST_BUCKET)
    with app.app_context():
        _ensure_tenant("test-default", "Escritório Alfa")
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    app.extensions.pop("object_store", None)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def default_tenant():
    """Return the auto-created default test tenant."""
    from casetrack.models.tenant import Tenant
    return Tenant.query.filter_by(slug="test-default").first()


@pytest.fixture()
def other_tenant():
    return _ensure_tenant("test-other", "Escritório Beta")


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    from casetrack.models.tenant import User

    def _make(tenant, full_name="Ana Souza"):
        user = User(tenant_id=tenant.id, full_name=full_name, email=None)
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_client():
    from casetrack.models.tenant import Client

    def _make(tenant, name="José da Silva", document_id="123.456.789-00"):
        record = Client(tenant_id=tenant.id, name=name, document_id=document_id)
        _db.session.add(record)
        _db.session.commit()
        return record
    return _make


@pytest.fixture()
def make_action():
    from casetrack.services import action_service

    def _make(tenant, client_record, title="Ação de Cobrança", complexity="Média", **extra):
        data = {"title": title, "complexity": complexity, "client_id": client_record.id}
        data.update(extra)
        return action_service.create_action(tenant.id, data)
    return _make


# ── requests-compatible adapter ──────────────────────────────────────────


class _AdapterResponse:
    def __init__(self, flask_response):
        self._resp = flask_response
        self.status_code = flask_response.status_code

    def json(self):
        if not self._resp.is_json:
            raise ValueError("response is not JSON")
        return self._resp.get_json()


class FlaskHttpAdapter:
    """Routes requests.Session-style calls to the Flask test client."""

    chunk_size = 4096

    def __init__(self, test_client):
        self.test_client = test_client
        self.requests = []

    def request(self, method, url, headers=None, timeout=None, params=None,
                json=None, data=None):
        path = urlsplit(url).path
        self.requests.append((method, path))
        headers = dict(headers or {})
        kwargs = {"query_string": params or {}}
        if hasattr(data, "read"):
            # Drain the streamed body in blocks, as a real transport does
            chunks = iter(lambda: data.read(self.chunk_size), b"")
            kwargs["data"] = b"".join(chunks)
            kwargs["content_type"] = headers.pop("Content-Type", None)
        elif json is not None:
            kwargs["json"] = json
        kwargs["headers"] = headers
        return _AdapterResponse(self.test_client.open(path, method=method, **kwargs))


@pytest.fixture()
def http_adapter(client):
    return FlaskHttpAdapter(client)
