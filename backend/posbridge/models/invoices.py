from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

from .catalog import Money, Quantity


class Invoice(db.Model):
    """
    Mirrored upstream sales invoice.

    Lines are replaced wholesale on every sync of the invoice; deleting an
    invoice deletes its lines first (ON DELETE CASCADE).
    """
    __tablename__ = "mirror_invoices"
    __table_args__ = (
        db.Index("ix_mirror_invoices_code", "code"),
        db.Index("ix_mirror_invoices_purchase_date", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    upstream_id = db.Column(db.BigInteger, nullable=False, unique=True)
    uuid = db.Column(db.String(64), nullable=True)
    code = db.Column(db.String(64), nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    branch_id = db.Column(db.BigInteger, nullable=True)
    branch_name = db.Column(db.String(255), nullable=True)
    sold_by_id = db.Column(db.BigInteger, nullable=True)
    sold_by_name = db.Column(db.String(255), nullable=True)
    customer_upstream_id = db.Column(db.BigInteger, nullable=True)
    customer_code = db.Column(db.String(64), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    order_code = db.Column(db.String(64), nullable=True)
    total = db.Column(Money, nullable=True)
    total_payment = db.Column(Money, nullable=True)
    discount = db.Column(Money, nullable=True)
    status = db.Column(db.Integer, nullable=True)
    status_value = db.Column(db.String(64), nullable=True)
    sale_channel_name = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)
    using_cod = db.Column(db.Boolean, nullable=True)
    modified_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_date = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvoiceLine.id",
    )

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "uuid": self.uuid,
            "code": self.code,
            "purchase_date": to_utc_z(self.purchase_date),
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "sold_by_name": self.sold_by_name,
            "customer_code": self.customer_code,
            "customer_name": self.customer_name,
            "order_code": self.order_code,
            "total": self.total,
            "total_payment": self.total_payment,
            "discount": self.discount,
            "status": self.status,
            "status_value": self.status_value,
            "sale_channel_name": self.sale_channel_name,
            "description": self.description,
            "synced_at": to_utc_z(self.synced_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class InvoiceLine(db.Model):
    __tablename__ = "mirror_invoice_lines"
    __table_args__ = (
        db.Index("ix_mirror_invoice_lines_product", "product_upstream_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("mirror_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    invoice_upstream_id = db.Column(db.BigInteger, nullable=False)
    # Resolved through the product mirror; None when the product is not mirrored yet
    product_id = db.Column(db.Integer, db.ForeignKey("mirror_products.id", ondelete="SET NULL"), nullable=True)
    product_upstream_id = db.Column(db.BigInteger, nullable=True)
    product_code = db.Column(db.String(255), nullable=True)
    product_name = db.Column(db.String(255), nullable=True)
    category_id = db.Column(db.BigInteger, nullable=True)
    category_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(Quantity, nullable=True)
    price = db.Column(Money, nullable=True)
    discount = db.Column(Money, nullable=True)
    discount_ratio = db.Column(Money, nullable=True)
    sub_total = db.Column(Money, nullable=True)
    note = db.Column(db.Text, nullable=True)
    serial_numbers = db.Column(db.Text, nullable=True)
    return_quantity = db.Column(Quantity, nullable=True)
    use_point = db.Column(db.Boolean, nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "product_upstream_id": self.product_upstream_id,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "category_name": self.category_name,
            "quantity": self.quantity,
            "price": self.price,
            "discount": self.discount,
            "sub_total": self.sub_total,
            "note": self.note,
            "serial_numbers": self.serial_numbers,
            "return_quantity": self.return_quantity,
        }
