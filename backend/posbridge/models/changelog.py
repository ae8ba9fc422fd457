from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ProductChangeLog(db.Model):
    """
    Append-only field-level diff on a mirrored product.

    Values are stored as text so one narrow table covers prices, costs and
    free text alike. Rows are never updated; downstream "what changed on
    day X" reports read this table directly.

    SOURCES:
    - webhook: upstream notified us of a change
    - correction: an operator pushed a correction upstream
    """
    __tablename__ = "product_change_logs"
    __table_args__ = (
        db.Index("ix_product_change_logs_upstream_created", "upstream_id", "created_at"),
        db.Index("ix_product_change_logs_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    upstream_id = db.Column(db.BigInteger, nullable=False)
    field_name = db.Column(db.String(64), nullable=False)
    old_value_text = db.Column(db.Text, nullable=True)
    new_value_text = db.Column(db.Text, nullable=True)
    branch_id = db.Column(db.BigInteger, nullable=True)
    source = db.Column(db.String(32), nullable=False, default="webhook")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<ProductChangeLog {self.upstream_id}.{self.field_name} {self.old_value_text!r}->{self.new_value_text!r}>"

    def to_dict(self):
        return {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "field_name": self.field_name,
            "old_value": self.old_value_text,
            "new_value": self.new_value_text,
            "branch_id": self.branch_id,
            "source": self.source,
            "created_at": to_utc_z(self.created_at),
        }
