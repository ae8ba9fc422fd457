"""
Pytest fixtures for posbridge backend tests.

Provides the in-memory app, a per-test clean database, a stored upstream
credential, and FakeUpstream: a requests.Session stand-in that serves
queued responses and records every call.
"""

import json
from collections import defaultdict, deque
from datetime import timedelta
from urllib.parse import urlsplit

import pytest
import requests

from posbridge import create_app
from posbridge.extensions import db
from posbridge.models import SystemRecord
from posbridge.services import webhook_service
from posbridge.services.credential_service import CREDENTIAL_TITLE
from posbridge.services.upstream_client import UpstreamClient
from posbridge.time_utils import to_utc_z, utcnow

BASE_URL = "https://upstream.test/api"
TOKEN_URL = "https://auth.upstream.test/connect/token"
WEBHOOK_SECRET = "whsec-test"
API_KEY = "operator-key"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'UPSTREAM_BASE_URL': BASE_URL,
    'UPSTREAM_TOKEN_URL': TOKEN_URL,
    'UPSTREAM_RETAILER': 'teststore',
    'UPSTREAM_CLIENT_ID': 'k',
    'UPSTREAM_CLIENT_SECRET': 's',
    'UPSTREAM_PAGE_SIZE': 100,
    'UPSTREAM_RETRY_DELAY_SECONDS': 0,
    'UPSTREAM_INVOICE_PAGE_DELAY_SECONDS': 0,
    'UPSTREAM_DEFAULT_BRANCH_ID': 1,
    'WEBHOOK_SECRET': WEBHOOK_SECRET,
    'WEBHOOK_SOFT_DEADLINE_SECONDS': 0,
    'SYNC_API_KEY': API_KEY,
    'SCHEDULER_ENABLED': False,
    'SCHEDULER_TIMEZONE': 'Asia/Ho_Chi_Minh',
    'PRICE_TABLE_TRIGGER_URL': None,
}


def make_response(status=200, payload=None, text=None, url=BASE_URL):
    """Build a real requests.Response with a JSON (or raw text) body."""
    response = requests.Response()
    response.status_code = status
    response.url = url
    if text is not None:
        response._content = text.encode("utf-8")
    elif payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = b""
    return response


def page(rows, total=None):
    return {"data": rows, "total": len(rows) if total is None else total}


class FakeUpstream:
    """
    Queued responses per (METHOD, path); the last queued response for a
    route is repeated once the queue runs dry. Token requests go through
    `post`, everything else through `request`.
    """

    def __init__(self):
        self.routes = defaultdict(deque)
        self.calls = []
        self.token_responses = deque()
        self.token_calls = []

    def add(self, method, path, payload=None, status=200, text=None, error=None):
        self.routes[(method.upper(), path)].append((status, payload, text, error))
        return self

    def add_token(self, access_token="T2", expires_in=3600, status=200):
        payload = {"access_token": access_token, "expires_in": expires_in, "token_type": "Bearer"}
        self.token_responses.append((status, payload))
        return self

    def calls_to(self, method, path):
        return [call for call in self.calls if call["method"] == method.upper() and call["path"] == path]

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        if path.startswith(urlsplit(BASE_URL).path):
            path = path[len(urlsplit(BASE_URL).path):]
        self.calls.append({
            "method": method.upper(),
            "path": path,
            "params": dict(params or {}),
            "json": json,
            "headers": dict(headers or {}),
        })
        queue = self.routes.get((method.upper(), path))
        if not queue:
            return make_response(404, {"message": f"no fake route for {method} {path}"})
        status, payload, text, error = queue.popleft() if len(queue) > 1 else queue[0]
        if error is not None:
            raise error
        return make_response(status, payload, text, url=url)

    def post(self, url, data=None, headers=None, timeout=None):
        self.token_calls.append({"url": url, "data": dict(data or {}), "headers": dict(headers or {})})
        if not self.token_responses:
            return make_response(500, {"error": "no token queued"})
        status, payload = self.token_responses.popleft() if len(self.token_responses) > 1 else self.token_responses[0]
        return make_response(status, payload, url=url)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        webhook_service.counters.reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def stored_token(db_session):
    """A structured, unexpired upstream credential."""
    expires_at = utcnow() + timedelta(hours=1)
    record = SystemRecord(
        title=CREDENTIAL_TITLE,
        value={"token": "T1", "expires_in": 3600, "expires_at": to_utc_z(expires_at)},
    )
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def fake_upstream():
    return FakeUpstream()


@pytest.fixture(scope='function')
def upstream(app, fake_upstream, stored_token):
    """UpstreamClient wired to FakeUpstream, with sleeps recorded instead of taken."""
    sleeps = []
    client = UpstreamClient.from_config(app.config, session=fake_upstream)
    client._sleep = sleeps.append
    client.sleeps = sleeps
    return client


def api_headers(key=API_KEY) -> dict:
    """Helper to create operator API headers."""
    return {'X-API-Key': key}
