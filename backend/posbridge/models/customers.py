from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

from .catalog import Money


class Customer(db.Model):
    """
    Mirrored upstream customer.

    `groups` is the upstream's comma-joined group list, kept verbatim.
    Customers carry no annotations today; the generic upsert still applies.
    """
    __tablename__ = "mirror_customers"
    __table_args__ = (
        db.Index("ix_mirror_customers_code", "code"),
        db.Index("ix_mirror_customers_contact", "contact_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    upstream_id = db.Column(db.BigInteger, nullable=False, unique=True)
    code = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    retailer_id = db.Column(db.BigInteger, nullable=True)
    branch_id = db.Column(db.BigInteger, nullable=True)
    location_name = db.Column(db.String(255), nullable=True)
    ward_name = db.Column(db.String(255), nullable=True)
    contact_number = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    comments = db.Column(db.Text, nullable=True)
    type = db.Column(db.Integer, nullable=True)
    groups = db.Column(db.Text, nullable=True)
    debt = db.Column(Money, nullable=True)
    modified_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_date = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "code": self.code,
            "name": self.name,
            "branch_id": self.branch_id,
            "contact_number": self.contact_number,
            "address": self.address,
            "location_name": self.location_name,
            "ward_name": self.ward_name,
            "groups": self.groups,
            "debt": self.debt,
            "modified_date": to_utc_z(self.modified_date),
            "synced_at": to_utc_z(self.synced_at),
        }
