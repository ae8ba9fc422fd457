# Overview: Upstream POS credential store backed by a single system record.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..extensions import db
from ..models import SystemRecord
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow

logger = logging.getLogger(__name__)

CREDENTIAL_TITLE = "upstream_pos"

FORM_LEGACY = "legacy"
FORM_STRUCTURED = "structured"


class CredentialMissing(LookupError):
    """No credential is stored, or the stored value cannot be decoded."""


@dataclass
class StoredCredential:
    token: str
    form: str
    expires_in: int | None = None
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        # Legacy bare strings carry no expiry; treat them as live
        if self.expires_at is None:
            return False
        return self.expires_at <= utcnow()

    def to_dict(self) -> dict:
        return {
            "form": self.form,
            "expires_in": self.expires_in,
            "expires_at": to_utc_z(self.expires_at),
            "expired": self.is_expired,
        }


def _decode(value) -> StoredCredential:
    if isinstance(value, str):
        if not value.strip():
            raise CredentialMissing("Stored upstream credential is empty")
        return StoredCredential(token=value, form=FORM_LEGACY)

    if isinstance(value, dict):
        token = value.get("token")
        if not isinstance(token, str) or not token.strip():
            raise CredentialMissing("Stored upstream credential has no token")
        expires_in = value.get("expires_in")
        try:
            expires_at = parse_iso_datetime(value.get("expires_at"))
        except (TypeError, ValueError):
            raise CredentialMissing("Stored upstream credential has an unreadable expiry")
        return StoredCredential(
            token=token,
            form=FORM_STRUCTURED,
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
            expires_at=expires_at,
        )

    raise CredentialMissing("Stored upstream credential has an unsupported shape")


def _get_record() -> SystemRecord | None:
    return db.session.query(SystemRecord).filter_by(title=CREDENTIAL_TITLE).one_or_none()


def load() -> StoredCredential:
    """
    Read the stored credential with its metadata.

    Every call hits the store; the refresher is the single writer and
    there is deliberately no in-process copy to go stale.
    """
    record = _get_record()
    if record is None or record.value is None:
        raise CredentialMissing("No upstream credential stored; run a token refresh")
    return _decode(record.value)


def read() -> str:
    """Return the current bearer token."""
    return load().token


def write(token: str, expires_in: int | float) -> StoredCredential:
    """Replace the stored credential; expires_at = now + expires_in."""
    if not token:
        raise ValueError("token is required")
    expires_in = int(expires_in)
    expires_at = utcnow() + timedelta(seconds=expires_in)
    value = {
        "token": token,
        "expires_in": expires_in,
        "expires_at": to_utc_z(expires_at),
    }

    record = _get_record()
    if record is None:
        record = SystemRecord(title=CREDENTIAL_TITLE, value=value)
        db.session.add(record)
    else:
        record.value = value
    db.session.commit()

    logger.info("Stored upstream credential (expires_at=%s)", value["expires_at"])
    return StoredCredential(token=token, form=FORM_STRUCTURED, expires_in=expires_in, expires_at=expires_at.replace(microsecond=0))


def status() -> dict:
    """Token inspection for operators; never exposes the token itself."""
    try:
        credential = load()
    except CredentialMissing as exc:
        return {"stored": False, "reason": str(exc)}
    return {"stored": True, **credential.to_dict()}
