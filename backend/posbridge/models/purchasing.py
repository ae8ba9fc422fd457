from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

from .catalog import Money, Quantity

LINE_STATUSES = ("pending", "done", "skipped")


class PurchaseOrder(db.Model):
    """
    Completed upstream purchase order.

    IMMUTABLE ONCE MIRRORED: the sync inserts purchase orders it has not
    seen and skips every upstream_id already present.
    """
    __tablename__ = "mirror_purchase_orders"
    __table_args__ = (
        db.Index("ix_mirror_purchase_orders_code", "code"),
        db.Index("ix_mirror_purchase_orders_purchase_date", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    upstream_id = db.Column(db.BigInteger, nullable=False, unique=True)
    code = db.Column(db.String(64), nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    branch_id = db.Column(db.BigInteger, nullable=True)
    branch_name = db.Column(db.String(255), nullable=True)
    purchase_by_id = db.Column(db.BigInteger, nullable=True)
    purchase_by_name = db.Column(db.String(255), nullable=True)
    supplier_upstream_id = db.Column(db.BigInteger, nullable=True)
    supplier_code = db.Column(db.String(64), nullable=True)
    supplier_name = db.Column(db.String(255), nullable=True)
    total = db.Column(Money, nullable=True)
    total_payment = db.Column(Money, nullable=True)
    discount = db.Column(Money, nullable=True)
    ex_return_suppliers = db.Column(Money, nullable=True)
    ex_return_third_party = db.Column(Money, nullable=True)
    status = db.Column(db.Integer, nullable=True)
    description = db.Column(db.Text, nullable=True)
    modified_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_date = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Annotations
    local_status = db.Column(db.String(32), nullable=False, default="pending")

    lines = db.relationship(
        "PurchaseOrderLine",
        backref="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PurchaseOrderLine.id",
    )

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "code": self.code,
            "purchase_date": to_utc_z(self.purchase_date),
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "supplier_code": self.supplier_code,
            "supplier_name": self.supplier_name,
            "total": self.total,
            "total_payment": self.total_payment,
            "discount": self.discount,
            "status": self.status,
            "description": self.description,
            "local_status": self.local_status,
            "synced_at": to_utc_z(self.synced_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class PurchaseOrderLine(db.Model):
    __tablename__ = "mirror_purchase_order_lines"
    __table_args__ = (
        db.Index("ix_mirror_purchase_order_lines_product", "product_upstream_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("mirror_purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    purchase_order_upstream_id = db.Column(db.BigInteger, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("mirror_products.id", ondelete="SET NULL"), nullable=True)
    product_upstream_id = db.Column(db.BigInteger, nullable=True)
    product_code = db.Column(db.String(255), nullable=True)
    product_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(Quantity, nullable=True)
    price = db.Column(Money, nullable=True)
    discount = db.Column(Money, nullable=True)
    sub_total = db.Column(Money, nullable=True)
    description = db.Column(db.Text, nullable=True)
    serial_numbers = db.Column(db.Text, nullable=True)
    batch_expire_id = db.Column(db.BigInteger, nullable=True)
    batch_name = db.Column(db.String(255), nullable=True)
    batch_expire_date = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Annotations
    local_status = db.Column(db.String(32), nullable=False, default="pending")
    local_reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_upstream_id": self.product_upstream_id,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": self.price,
            "discount": self.discount,
            "sub_total": self.sub_total,
            "batch_name": self.batch_name,
            "batch_expire_date": to_utc_z(self.batch_expire_date),
            "local_status": self.local_status,
            "local_reviewed_at": to_utc_z(self.local_reviewed_at),
        }
