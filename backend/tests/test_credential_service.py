"""
Credential store tests.

Both storage forms (legacy bare string, structured object) must be
readable; anything else is CredentialMissing.
"""

import pytest

from posbridge.models import SystemRecord
from posbridge.services import credential_service
from posbridge.services.credential_service import CREDENTIAL_TITLE, CredentialMissing
from posbridge.time_utils import parse_iso_datetime, utcnow


def _store(db_session, value):
    db_session.add(SystemRecord(title=CREDENTIAL_TITLE, value=value))
    db_session.commit()


def test_read_without_record_raises(db_session):
    with pytest.raises(CredentialMissing):
        credential_service.read()


def test_read_legacy_bare_string(db_session):
    _store(db_session, "legacy-token")

    assert credential_service.read() == "legacy-token"
    credential = credential_service.load()
    assert credential.form == credential_service.FORM_LEGACY
    assert credential.expires_at is None
    assert credential.is_expired is False


def test_read_structured_object(db_session):
    _store(db_session, {"token": "T1", "expires_in": 3600, "expires_at": "2099-01-01T00:00:00Z"})

    credential = credential_service.load()
    assert credential.token == "T1"
    assert credential.form == credential_service.FORM_STRUCTURED
    assert credential.expires_in == 3600
    assert credential.is_expired is False


@pytest.mark.parametrize("value", [
    "",
    {"expires_in": 3600},
    {"token": "T1", "expires_at": "not-a-date"},
    [1, 2, 3],
])
def test_malformed_values_are_missing(db_session, value):
    _store(db_session, value)

    with pytest.raises(CredentialMissing):
        credential_service.read()


def test_write_replaces_token_and_sets_expiry(db_session):
    _store(db_session, "old-token")

    before = utcnow()
    credential_service.write("T2", 3600)

    assert credential_service.read() == "T2"
    record = db_session.query(SystemRecord).filter_by(title=CREDENTIAL_TITLE).one()
    assert record.value["token"] == "T2"
    assert record.value["expires_in"] == 3600
    expires_at = parse_iso_datetime(record.value["expires_at"])
    delta = (expires_at - before).total_seconds()
    assert 3590 <= delta <= 3610
    assert db_session.query(SystemRecord).count() == 1


def test_status_never_exposes_token(db_session):
    _store(db_session, {"token": "secret-token", "expires_in": 60, "expires_at": "2000-01-01T00:00:00Z"})

    status = credential_service.status()
    assert status["stored"] is True
    assert status["expired"] is True
    assert "secret-token" not in str(status)


def test_status_when_missing(db_session):
    status = credential_service.status()
    assert status["stored"] is False
    assert "reason" in status
