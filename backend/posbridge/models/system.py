from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SystemRecord(db.Model):
    """
    Process-wide key/value record.

    The upstream credential lives here under a single title; the refresher
    is its only writer and every upstream call reads it fresh.
    """
    __tablename__ = "system_records"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(128), nullable=False, unique=True)
    # Either a bare JSON string (legacy) or an object
    value = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "updated_at": to_utc_z(self.updated_at),
        }
