from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

# Mirror columns whose names start with this prefix are authored locally and
# are never overwritten by an upstream sync.
ANNOTATION_PREFIX = "local_"

Money = db.Numeric(20, 6, asdecimal=False)
Quantity = db.Numeric(20, 3, asdecimal=False)


class Category(db.Model):
    """
    Upstream product category.

    Categories arrive as a tree; the mirror stores them flat with a
    parent pointer expressed in upstream ids.
    """
    __tablename__ = "mirror_categories"
    __table_args__ = (
        db.Index("ix_mirror_categories_parent", "parent_upstream_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    upstream_id = db.Column(db.BigInteger, nullable=False, unique=True)
    retailer_id = db.Column(db.BigInteger, nullable=True)
    name = db.Column(db.String(255), nullable=False)
    parent_upstream_id = db.Column(db.BigInteger, nullable=True)
    rank = db.Column(db.Integer, nullable=True)
    has_child = db.Column(db.Boolean, nullable=False, default=False)
    modified_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_date = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Annotations
    local_is_active = db.Column(db.Boolean, nullable=False, default=False)
    local_color_border = db.Column(db.String(32), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "name": self.name,
            "parent_upstream_id": self.parent_upstream_id,
            "rank": self.rank,
            "has_child": self.has_child,
            "modified_date": to_utc_z(self.modified_date),
            "created_date": to_utc_z(self.created_date),
            "synced_at": to_utc_z(self.synced_at),
            "local_is_active": self.local_is_active,
            "local_color_border": self.local_color_border,
        }


class Product(db.Model):
    """
    Mirrored upstream product.

    UPSTREAM-AUTHORITATIVE: every non-prefixed column is overwritten on sync.
    LOCALLY-AUTHORED: `local_*` columns (display slug, tags, visibility,
    ordering, gallery, colours) survive every sync untouched.

    LOOKUP PATTERN:
    - Natural key: Product.upstream_id (upstream product id)
    - Internal id (Product.id) is what inventories and pricebook rows reference
    """
    __tablename__ = "mirror_products"
    __table_args__ = (
        db.Index("ix_mirror_products_code", "code"),
        db.Index("ix_mirror_products_category", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    upstream_id = db.Column(db.BigInteger, nullable=False, unique=True)
    retailer_id = db.Column(db.BigInteger, nullable=True)

    code = db.Column(db.String(255), nullable=True)
    barcode = db.Column(db.String(255), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    full_name = db.Column(db.String(255), nullable=True)
    category_id = db.Column(db.BigInteger, nullable=True)
    category_name = db.Column(db.String(255), nullable=True)
    allows_sale = db.Column(db.Boolean, nullable=True)
    has_variants = db.Column(db.Boolean, nullable=True)
    base_price = db.Column(Money, nullable=True)
    weight = db.Column(Money, nullable=True)
    unit = db.Column(db.String(64), nullable=True)
    master_product_id = db.Column(db.BigInteger, nullable=True)
    master_unit_id = db.Column(db.BigInteger, nullable=True)
    conversion_value = db.Column(Money, nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=True)
    order_template = db.Column(db.String(255), nullable=True)
    is_lot_serial_control = db.Column(db.Boolean, nullable=True)
    is_batch_expire_control = db.Column(db.Boolean, nullable=True)
    trademark_id = db.Column(db.BigInteger, nullable=True)
    trademark_name = db.Column(db.String(255), nullable=True)
    images = db.Column(db.JSON, nullable=True)
    modified_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_date = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Annotations
    local_slug = db.Column(db.String(255), nullable=True)
    local_tags = db.Column(db.JSON, nullable=True)
    local_visibility = db.Column(db.Boolean, nullable=False, default=False)
    local_sort_order = db.Column(db.Integer, nullable=True)
    local_color_border = db.Column(db.String(32), nullable=True)
    local_thumbnail_title = db.Column(db.String(255), nullable=True)
    local_gallery_urls = db.Column(db.JSON, nullable=True)
    local_image_version = db.Column(db.Integer, nullable=False, default=0)
    local_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    inventories = db.relationship(
        "Inventory",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} upstream_id={self.upstream_id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "code": self.code,
            "barcode": self.barcode,
            "name": self.name,
            "full_name": self.full_name,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "base_price": self.base_price,
            "unit": self.unit,
            "weight": self.weight,
            "conversion_value": self.conversion_value,
            "master_product_id": self.master_product_id,
            "is_active": self.is_active,
            "description": self.description,
            "order_template": self.order_template,
            "trademark_name": self.trademark_name,
            "images": self.images or [],
            "modified_date": to_utc_z(self.modified_date),
            "created_date": to_utc_z(self.created_date),
            "synced_at": to_utc_z(self.synced_at),
            "local_slug": self.local_slug,
            "local_tags": self.local_tags or [],
            "local_visibility": self.local_visibility,
            "local_sort_order": self.local_sort_order,
            "local_color_border": self.local_color_border,
            "local_thumbnail_title": self.local_thumbnail_title,
            "local_gallery_urls": self.local_gallery_urls or [],
            "local_image_version": self.local_image_version,
            "local_updated_at": to_utc_z(self.local_updated_at),
        }


class Inventory(db.Model):
    """
    Per-branch stock and cost for one product.

    REPLACED WHOLESALE: a product sync deletes every inventory row of the
    product and inserts the upstream set, so branches that disappear
    upstream disappear here too.
    """
    __tablename__ = "mirror_inventories"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_mirror_inventories_product_branch"),
        db.Index("ix_mirror_inventories_branch", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("mirror_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_upstream_id = db.Column(db.BigInteger, nullable=False, index=True)
    product_code = db.Column(db.String(255), nullable=True)
    product_name = db.Column(db.String(255), nullable=True)
    branch_id = db.Column(db.BigInteger, nullable=False)
    branch_name = db.Column(db.String(255), nullable=True)
    cost = db.Column(Money, nullable=True)
    on_hand = db.Column(Quantity, nullable=True)
    reserved = db.Column(Quantity, nullable=True)
    actual_reserved = db.Column(Quantity, nullable=True)
    min_quantity = db.Column(Quantity, nullable=True)
    max_quantity = db.Column(Quantity, nullable=True)
    on_order = db.Column(Quantity, nullable=True)
    is_active = db.Column(db.Boolean, nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_upstream_id": self.product_upstream_id,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "cost": self.cost,
            "on_hand": self.on_hand,
            "reserved": self.reserved,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "on_order": self.on_order,
            "synced_at": to_utc_z(self.synced_at),
        }


class CustomerGroup(db.Model):
    __tablename__ = "mirror_customer_groups"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    # "" is the default group every pricebook falls back to
    name = db.Column(db.String(255), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class Pricebook(db.Model):
    """
    Price override list scoped to a customer group and a date range.

    One upstream pricebook applied to several customer groups is stored as
    one row per (pricebook, group).
    """
    __tablename__ = "mirror_pricebooks"
    __table_args__ = (
        db.UniqueConstraint("upstream_id", "customer_group_name", name="uq_mirror_pricebooks_upstream_group"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    upstream_id = db.Column(db.BigInteger, nullable=False, index=True)
    customer_group_name = db.Column(db.String(255), nullable=False, default="default")
    name = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=True)
    is_global = db.Column(db.Boolean, nullable=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "upstream_id": self.upstream_id,
            "customer_group_name": self.customer_group_name,
            "name": self.name,
            "is_active": self.is_active,
            "is_global": self.is_global,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
        }


class ProductPricebook(db.Model):
    __tablename__ = "mirror_product_pricebooks"
    __table_args__ = (
        db.Index("ix_mirror_product_pricebooks_book_group", "pricebook_upstream_id", "customer_group_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    pricebook_upstream_id = db.Column(db.BigInteger, nullable=False)
    pricebook_name = db.Column(db.String(255), nullable=True)
    customer_group_name = db.Column(db.String(255), nullable=False, default="default")
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("mirror_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_upstream_id = db.Column(db.BigInteger, nullable=False)
    price = db.Column(Money, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pricebook_upstream_id": self.pricebook_upstream_id,
            "pricebook_name": self.pricebook_name,
            "customer_group_name": self.customer_group_name,
            "product_id": self.product_id,
            "product_upstream_id": self.product_upstream_id,
            "price": self.price,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
        }
