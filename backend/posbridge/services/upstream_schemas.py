# Overview: Typed records for every upstream POS payload; untyped dicts stop here.
#
# Key conventions by endpoint:
# - REST list endpoints (/products, /customers, /invoices, /purchaseorders,
#   /pricebooks, /categories) and GET /products/{id}: camelCase keys.
# - GET /invoices/code/{code}: camelCase keys plus a PascalCase `SaleChannel`
#   object ({Id, Name}) that may be absent.
# - Webhook payloads: PascalCase throughout ({Id, Attempt, Notifications:
#   [{Action, Data: [...]}]}).
# - POST /connect/token: snake_case ({access_token, expires_in}).

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..time_utils import parse_iso_datetime
from .upstream_errors import UpstreamDecodeError

DEFAULT_SALE_CHANNEL = "gltpos"
DEFAULT_CUSTOMER_GROUP = "default"


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        raise UpstreamDecodeError(f"Expected an integer, got {value!r}")


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        raise UpstreamDecodeError(f"Expected a number, got {value!r}")


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_bool(value: Any) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in {"true", "1", "yes"}:
        return True
    if text in {"false", "0", "no"}:
        return False
    raise UpstreamDecodeError(f"Expected a boolean, got {value!r}")


def _to_datetime(value: Any) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise UpstreamDecodeError(f"Expected an ISO-8601 timestamp, got {value!r}")


def _require_mapping(payload: Any, what: str) -> dict:
    if not isinstance(payload, dict):
        raise UpstreamDecodeError(f"{what} payload must be an object, got {type(payload).__name__}")
    return payload


def _require_id(payload: dict, key: str, what: str) -> int:
    value = _to_int(payload.get(key))
    if value is None:
        raise UpstreamDecodeError(f"{what} payload is missing {key!r}")
    return value


def _list_of(payload: dict, key: str) -> list:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise UpstreamDecodeError(f"{key!r} must be a list, got {type(value).__name__}")
    return value


@dataclass
class TokenGrant:
    access_token: str
    expires_in: int

    @classmethod
    def from_api(cls, payload: Any) -> "TokenGrant":
        payload = _require_mapping(payload, "Token")
        token = _to_text(payload.get("access_token"))
        if not token:
            raise UpstreamDecodeError("Token response has no access_token")
        expires_in = _to_int(payload.get("expires_in"))
        if expires_in is None:
            raise UpstreamDecodeError("Token response has no expires_in")
        return cls(access_token=token, expires_in=expires_in)


@dataclass
class InventoryRecord:
    branch_id: int
    branch_name: str | None = None
    product_code: str | None = None
    product_name: str | None = None
    cost: float | None = None
    on_hand: float | None = None
    reserved: float | None = None
    actual_reserved: float | None = None
    min_quantity: float | None = None
    max_quantity: float | None = None
    on_order: float | None = None
    is_active: bool | None = None

    @classmethod
    def from_api(cls, payload: Any) -> "InventoryRecord":
        payload = _require_mapping(payload, "Inventory")
        return cls(
            branch_id=_require_id(payload, "branchId", "Inventory"),
            branch_name=_to_text(payload.get("branchName")),
            product_code=_to_text(payload.get("productCode")),
            product_name=_to_text(payload.get("productName")),
            cost=_to_float(payload.get("cost")),
            on_hand=_to_float(payload.get("onHand")),
            reserved=_to_float(payload.get("reserved")),
            actual_reserved=_to_float(payload.get("actualReserved")),
            min_quantity=_to_float(payload.get("minQuantity")),
            max_quantity=_to_float(payload.get("maxQuantity")),
            on_order=_to_float(payload.get("onOrder")),
            is_active=_to_bool(payload.get("isActive")),
        )

    def to_row(self, *, product_id: int, product_upstream_id: int, product_code: str | None = None) -> dict:
        return {
            "product_id": product_id,
            "product_upstream_id": product_upstream_id,
            "product_code": self.product_code or product_code,
            "product_name": self.product_name,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "cost": self.cost,
            "on_hand": self.on_hand,
            "reserved": self.reserved,
            "actual_reserved": self.actual_reserved,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "on_order": self.on_order,
            "is_active": self.is_active,
        }


@dataclass
class ProductPricebookRecord:
    """A pricebook entry embedded in a product payload (`priceBooks[]`)."""
    pricebook_upstream_id: int
    pricebook_name: str | None
    price: float | None
    is_active: bool
    start_date: datetime | None = None
    end_date: datetime | None = None

    @classmethod
    def from_api(cls, payload: Any) -> "ProductPricebookRecord":
        payload = _require_mapping(payload, "Product pricebook")
        return cls(
            pricebook_upstream_id=_require_id(payload, "priceBookId", "Product pricebook"),
            pricebook_name=_to_text(payload.get("priceBookName")),
            price=_to_float(payload.get("price")),
            is_active=bool(_to_bool(payload.get("isActive"))),
            start_date=_to_datetime(payload.get("startDate")),
            end_date=_to_datetime(payload.get("endDate")),
        )


@dataclass
class ProductRecord:
    upstream_id: int
    retailer_id: int | None = None
    code: str | None = None
    barcode: str | None = None
    name: str | None = None
    full_name: str | None = None
    category_id: int | None = None
    category_name: str | None = None
    allows_sale: bool | None = None
    has_variants: bool | None = None
    base_price: float | None = None
    weight: float | None = None
    unit: str | None = None
    master_product_id: int | None = None
    master_unit_id: int | None = None
    conversion_value: float | None = None
    description: str | None = None
    is_active: bool | None = None
    order_template: str | None = None
    is_lot_serial_control: bool | None = None
    is_batch_expire_control: bool | None = None
    trademark_id: int | None = None
    trademark_name: str | None = None
    images: list[str] = field(default_factory=list)
    modified_date: datetime | None = None
    created_date: datetime | None = None
    inventories: list[InventoryRecord] = field(default_factory=list)
    pricebooks: list[ProductPricebookRecord] = field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Any) -> "ProductRecord":
        payload = _require_mapping(payload, "Product")
        images = [str(url) for url in _list_of(payload, "images") if url]
        return cls(
            upstream_id=_require_id(payload, "id", "Product"),
            retailer_id=_to_int(payload.get("retailerId")),
            code=_to_text(payload.get("code")),
            barcode=_to_text(payload.get("barCode")),
            name=_to_text(payload.get("name")),
            full_name=_to_text(payload.get("fullName")),
            category_id=_to_int(payload.get("categoryId")),
            category_name=_to_text(payload.get("categoryName")),
            allows_sale=_to_bool(payload.get("allowsSale")),
            has_variants=_to_bool(payload.get("hasVariants")),
            base_price=_to_float(payload.get("basePrice")),
            weight=_to_float(payload.get("weight")),
            unit=_to_text(payload.get("unit")),
            master_product_id=_to_int(payload.get("masterProductId")),
            master_unit_id=_to_int(payload.get("masterUnitId")),
            conversion_value=_to_float(payload.get("conversionValue")),
            description=payload.get("description"),
            is_active=_to_bool(payload.get("isActive")),
            order_template=_to_text(payload.get("orderTemplate")),
            is_lot_serial_control=_to_bool(payload.get("isLotSerialControl")),
            is_batch_expire_control=_to_bool(payload.get("isBatchExpireControl")),
            trademark_id=_to_int(payload.get("tradeMarkId")),
            trademark_name=_to_text(payload.get("tradeMarkName")),
            images=images,
            modified_date=_to_datetime(payload.get("modifiedDate")),
            created_date=_to_datetime(payload.get("createdDate")),
            inventories=[InventoryRecord.from_api(item) for item in _list_of(payload, "inventories")],
            pricebooks=[ProductPricebookRecord.from_api(item) for item in _list_of(payload, "priceBooks")],
        )

    def to_row(self) -> dict:
        return {
            "upstream_id": self.upstream_id,
            "retailer_id": self.retailer_id,
            "code": self.code,
            "barcode": self.barcode,
            "name": self.name,
            "full_name": self.full_name,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "allows_sale": self.allows_sale,
            "has_variants": self.has_variants,
            "base_price": self.base_price,
            "weight": self.weight,
            "unit": self.unit,
            "master_product_id": self.master_product_id,
            "master_unit_id": self.master_unit_id,
            "conversion_value": self.conversion_value,
            "description": self.description,
            "is_active": self.is_active,
            "order_template": self.order_template,
            "is_lot_serial_control": self.is_lot_serial_control,
            "is_batch_expire_control": self.is_batch_expire_control,
            "trademark_id": self.trademark_id,
            "trademark_name": self.trademark_name,
            "images": list(self.images),
            "modified_date": self.modified_date,
            "created_date": self.created_date,
        }


@dataclass
class CategoryRecord:
    upstream_id: int
    name: str
    parent_upstream_id: int | None = None
    rank: int | None = None
    has_child: bool = False
    retailer_id: int | None = None
    modified_date: datetime | None = None
    created_date: datetime | None = None
    children: list["CategoryRecord"] = field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Any, parent_upstream_id: int | None = None) -> "CategoryRecord":
        payload = _require_mapping(payload, "Category")
        upstream_id = _require_id(payload, "categoryId", "Category")
        parent = _to_int(payload.get("parentId"))
        children = [cls.from_api(child, upstream_id) for child in _list_of(payload, "children")]
        return cls(
            upstream_id=upstream_id,
            name=_to_text(payload.get("categoryName")) or "",
            parent_upstream_id=parent if parent is not None else parent_upstream_id,
            rank=_to_int(payload.get("rank")),
            has_child=bool(_to_bool(payload.get("hasChild"))) or bool(children),
            retailer_id=_to_int(payload.get("retailerId")),
            modified_date=_to_datetime(payload.get("modifiedDate")),
            created_date=_to_datetime(payload.get("createdDate")),
            children=children,
        )

    def flatten(self) -> list["CategoryRecord"]:
        """Depth-first, parent before its children."""
        flat = [self]
        for child in self.children:
            flat.extend(child.flatten())
        return flat

    def to_row(self) -> dict:
        return {
            "upstream_id": self.upstream_id,
            "name": self.name,
            "parent_upstream_id": self.parent_upstream_id,
            "rank": self.rank,
            "has_child": self.has_child,
            "retailer_id": self.retailer_id,
            "modified_date": self.modified_date,
            "created_date": self.created_date,
        }


@dataclass
class CustomerRecord:
    upstream_id: int
    code: str | None = None
    name: str | None = None
    retailer_id: int | None = None
    branch_id: int | None = None
    location_name: str | None = None
    ward_name: str | None = None
    contact_number: str | None = None
    address: str | None = None
    comments: str | None = None
    type: int | None = None
    groups: str | None = None
    debt: float | None = None
    modified_date: datetime | None = None
    created_date: datetime | None = None

    @classmethod
    def from_api(cls, payload: Any) -> "CustomerRecord":
        payload = _require_mapping(payload, "Customer")
        return cls(
            upstream_id=_require_id(payload, "id", "Customer"),
            code=_to_text(payload.get("code")),
            name=_to_text(payload.get("name")),
            retailer_id=_to_int(payload.get("retailerId")),
            branch_id=_to_int(payload.get("branchId")),
            location_name=_to_text(payload.get("locationName")),
            ward_name=_to_text(payload.get("wardName")),
            contact_number=_to_text(payload.get("contactNumber")),
            address=_to_text(payload.get("address")),
            comments=_to_text(payload.get("comments")),
            type=_to_int(payload.get("type")),
            groups=_to_text(payload.get("groups")),
            debt=_to_float(payload.get("debt")),
            modified_date=_to_datetime(payload.get("modifiedDate")),
            created_date=_to_datetime(payload.get("createdDate")),
        )

    def to_row(self) -> dict:
        return {
            "upstream_id": self.upstream_id,
            "code": self.code,
            "name": self.name,
            "retailer_id": self.retailer_id,
            "branch_id": self.branch_id,
            "location_name": self.location_name,
            "ward_name": self.ward_name,
            "contact_number": self.contact_number,
            "address": self.address,
            "comments": self.comments,
            "type": self.type,
            "groups": self.groups,
            "debt": self.debt,
            "modified_date": self.modified_date,
            "created_date": self.created_date,
        }


@dataclass
class InvoiceLineRecord:
    product_upstream_id: int | None = None
    product_code: str | None = None
    product_name: str | None = None
    category_id: int | None = None
    category_name: str | None = None
    quantity: float | None = None
    price: float | None = None
    discount: float | None = None
    discount_ratio: float | None = None
    sub_total: float | None = None
    note: str | None = None
    serial_numbers: str | None = None
    return_quantity: float | None = None
    use_point: bool | None = None

    @classmethod
    def from_api(cls, payload: Any) -> "InvoiceLineRecord":
        payload = _require_mapping(payload, "Invoice detail")
        return cls(
            product_upstream_id=_to_int(payload.get("productId")),
            product_code=_to_text(payload.get("productCode")),
            product_name=_to_text(payload.get("productName")),
            category_id=_to_int(payload.get("categoryId")),
            category_name=_to_text(payload.get("categoryName")),
            quantity=_to_float(payload.get("quantity")),
            price=_to_float(payload.get("price")),
            discount=_to_float(payload.get("discount")),
            discount_ratio=_to_float(payload.get("discountRatio")),
            sub_total=_to_float(payload.get("subTotal")),
            note=_to_text(payload.get("note")),
            serial_numbers=_to_text(payload.get("serialNumbers")),
            return_quantity=_to_float(payload.get("returnQuantity")),
            use_point=_to_bool(payload.get("usePoint")),
        )

    def to_row(self, *, invoice_id: int, invoice_upstream_id: int, product_id: int | None) -> dict:
        return {
            "invoice_id": invoice_id,
            "invoice_upstream_id": invoice_upstream_id,
            "product_id": product_id,
            "product_upstream_id": self.product_upstream_id,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "quantity": self.quantity,
            "price": self.price,
            "discount": self.discount,
            "discount_ratio": self.discount_ratio,
            "sub_total": self.sub_total,
            "note": self.note,
            "serial_numbers": self.serial_numbers,
            "return_quantity": self.return_quantity,
            "use_point": self.use_point,
        }


@dataclass
class InvoiceRecord:
    upstream_id: int
    uuid: str | None = None
    code: str | None = None
    purchase_date: datetime | None = None
    branch_id: int | None = None
    branch_name: str | None = None
    sold_by_id: int | None = None
    sold_by_name: str | None = None
    customer_upstream_id: int | None = None
    customer_code: str | None = None
    customer_name: str | None = None
    order_code: str | None = None
    total: float | None = None
    total_payment: float | None = None
    discount: float | None = None
    status: int | None = None
    status_value: str | None = None
    sale_channel_name: str | None = None
    description: str | None = None
    using_cod: bool | None = None
    modified_date: datetime | None = None
    created_date: datetime | None = None
    lines: list[InvoiceLineRecord] = field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Any) -> "InvoiceRecord":
        """List endpoint shape: camelCase, no sale channel."""
        payload = _require_mapping(payload, "Invoice")
        return cls(
            upstream_id=_require_id(payload, "id", "Invoice"),
            uuid=_to_text(payload.get("uuid")),
            code=_to_text(payload.get("code")),
            purchase_date=_to_datetime(payload.get("purchaseDate")),
            branch_id=_to_int(payload.get("branchId")),
            branch_name=_to_text(payload.get("branchName")),
            sold_by_id=_to_int(payload.get("soldById")),
            sold_by_name=_to_text(payload.get("soldByName")),
            customer_upstream_id=_to_int(payload.get("customerId")),
            customer_code=_to_text(payload.get("customerCode")),
            customer_name=_to_text(payload.get("customerName")),
            order_code=_to_text(payload.get("orderCode")),
            total=_to_float(payload.get("total")),
            total_payment=_to_float(payload.get("totalPayment")),
            discount=_to_float(payload.get("discount")),
            status=_to_int(payload.get("status")),
            status_value=_to_text(payload.get("statusValue")),
            description=_to_text(payload.get("description")),
            using_cod=_to_bool(payload.get("usingCod")),
            modified_date=_to_datetime(payload.get("modifiedDate")),
            created_date=_to_datetime(payload.get("createdDate")),
            lines=[InvoiceLineRecord.from_api(item) for item in _list_of(payload, "invoiceDetails")],
        )

    @classmethod
    def from_singleton(cls, payload: Any) -> "InvoiceRecord":
        """GET /invoices/code/{code}: adds an optional PascalCase SaleChannel."""
        record = cls.from_api(payload)
        channel = payload.get("SaleChannel")
        name = None
        if isinstance(channel, dict):
            name = _to_text(channel.get("Name"))
        record.sale_channel_name = name or DEFAULT_SALE_CHANNEL
        return record

    def to_row(self) -> dict:
        return {
            "upstream_id": self.upstream_id,
            "uuid": self.uuid,
            "code": self.code,
            "purchase_date": self.purchase_date,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "sold_by_id": self.sold_by_id,
            "sold_by_name": self.sold_by_name,
            "customer_upstream_id": self.customer_upstream_id,
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
            "using_cod": self.using_cod,
            "modified_date": self.modified_date,
            "created_date": self.created_date,
        }


@dataclass
class PurchaseOrderLineRecord:
    product_upstream_id: int | None = None
    product_code: str | None = None
    product_name: str | None = None
    quantity: float | None = None
    price: float | None = None
    discount: float | None = None
    sub_total: float | None = None
    description: str | None = None
    serial_numbers: str | None = None
    batch_expire_id: int | None = None
    batch_name: str | None = None
    batch_expire_date: datetime | None = None

    @classmethod
    def from_api(cls, payload: Any) -> "PurchaseOrderLineRecord":
        payload = _require_mapping(payload, "Purchase order detail")
        batch = payload.get("productBatchExpire") or {}
        if not isinstance(batch, dict):
            raise UpstreamDecodeError("'productBatchExpire' must be an object")
        quantity = _to_float(payload.get("quantity"))
        price = _to_float(payload.get("price"))
        discount = _to_float(payload.get("discount"))
        sub_total = _to_float(payload.get("subTotal"))
        if sub_total is None and quantity is not None and price is not None:
            sub_total = quantity * price - (discount or 0.0)
        return cls(
            product_upstream_id=_to_int(payload.get("productId")),
            product_code=_to_text(payload.get("productCode")),
            product_name=_to_text(payload.get("productName")),
            quantity=quantity,
            price=price,
            discount=discount,
            sub_total=sub_total,
            description=_to_text(payload.get("description")),
            serial_numbers=_to_text(payload.get("serialNumbers")),
            batch_expire_id=_to_int(batch.get("id")),
            batch_name=_to_text(batch.get("batchName")),
            batch_expire_date=_to_datetime(batch.get("expireDate")),
        )

    def to_row(self, *, purchase_order_id: int, purchase_order_upstream_id: int, product_id: int | None) -> dict:
        return {
            "purchase_order_id": purchase_order_id,
            "purchase_order_upstream_id": purchase_order_upstream_id,
            "product_id": product_id,
            "product_upstream_id": self.product_upstream_id,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": self.price,
            "discount": self.discount,
            "sub_total": self.sub_total,
            "description": self.description,
            "serial_numbers": self.serial_numbers,
            "batch_expire_id": self.batch_expire_id,
            "batch_name": self.batch_name,
            "batch_expire_date": self.batch_expire_date,
        }


@dataclass
class PurchaseOrderRecord:
    upstream_id: int
    code: str | None = None
    purchase_date: datetime | None = None
    branch_id: int | None = None
    branch_name: str | None = None
    purchase_by_id: int | None = None
    purchase_by_name: str | None = None
    supplier_upstream_id: int | None = None
    supplier_code: str | None = None
    supplier_name: str | None = None
    total: float | None = None
    total_payment: float | None = None
    discount: float | None = None
    ex_return_suppliers: float | None = None
    ex_return_third_party: float | None = None
    status: int | None = None
    description: str | None = None
    modified_date: datetime | None = None
    created_date: datetime | None = None
    lines: list[PurchaseOrderLineRecord] = field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Any) -> "PurchaseOrderRecord":
        payload = _require_mapping(payload, "Purchase order")
        return cls(
            upstream_id=_require_id(payload, "id", "Purchase order"),
            code=_to_text(payload.get("code")),
            purchase_date=_to_datetime(payload.get("purchaseDate")),
            branch_id=_to_int(payload.get("branchId")),
            branch_name=_to_text(payload.get("branchName")),
            purchase_by_id=_to_int(payload.get("purchaseById")),
            purchase_by_name=_to_text(payload.get("purchaseName")),
            supplier_upstream_id=_to_int(payload.get("supplierId")),
            supplier_code=_to_text(payload.get("supplierCode")),
            supplier_name=_to_text(payload.get("supplierName")),
            total=_to_float(payload.get("total")),
            total_payment=_to_float(payload.get("totalPayment")),
            discount=_to_float(payload.get("discount")),
            ex_return_suppliers=_to_float(payload.get("exReturnSuppliers")),
            ex_return_third_party=_to_float(payload.get("exReturnThirdParty")),
            status=_to_int(payload.get("status")),
            description=_to_text(payload.get("description")),
            modified_date=_to_datetime(payload.get("modifiedDate")),
            created_date=_to_datetime(payload.get("createdDate")),
            lines=[PurchaseOrderLineRecord.from_api(item) for item in _list_of(payload, "purchaseOrderDetails")],
        )

    def to_row(self) -> dict:
        return {
            "upstream_id": self.upstream_id,
            "code": self.code,
            "purchase_date": self.purchase_date,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "purchase_by_id": self.purchase_by_id,
            "purchase_by_name": self.purchase_by_name,
            "supplier_upstream_id": self.supplier_upstream_id,
            "supplier_code": self.supplier_code,
            "supplier_name": self.supplier_name,
            "total": self.total,
            "total_payment": self.total_payment,
            "discount": self.discount,
            "ex_return_suppliers": self.ex_return_suppliers,
            "ex_return_third_party": self.ex_return_third_party,
            "status": self.status,
            "description": self.description,
            "modified_date": self.modified_date,
            "created_date": self.created_date,
        }


@dataclass
class PricebookProductRecord:
    product_upstream_id: int
    price: float | None = None

    @classmethod
    def from_api(cls, payload: Any) -> "PricebookProductRecord":
        payload = _require_mapping(payload, "Pricebook product")
        return cls(
            product_upstream_id=_require_id(payload, "productId", "Pricebook product"),
            price=_to_float(payload.get("price")),
        )


@dataclass
class PricebookRecord:
    upstream_id: int
    name: str | None = None
    is_active: bool | None = None
    is_global: bool | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    customer_group_names: list[str] = field(default_factory=list)
    products: list[PricebookProductRecord] = field(default_factory=list)

    @classmethod
    def from_api(cls, payload: Any) -> "PricebookRecord":
        payload = _require_mapping(payload, "Pricebook")
        groups = []
        for group in _list_of(payload, "priceBookCustomerGroups"):
            group = _require_mapping(group, "Pricebook customer group")
            name = _to_text(group.get("customerGroupName")) or DEFAULT_CUSTOMER_GROUP
            if name not in groups:
                groups.append(name)
        is_global = _to_bool(payload.get("isGlobal"))
        return cls(
            upstream_id=_require_id(payload, "id", "Pricebook"),
            name=_to_text(payload.get("name")),
            is_active=_to_bool(payload.get("isActive")),
            is_global=True if is_global is None else is_global,
            start_date=_to_datetime(payload.get("startDate")),
            end_date=_to_datetime(payload.get("endDate")),
            customer_group_names=groups or [DEFAULT_CUSTOMER_GROUP],
            products=[PricebookProductRecord.from_api(item) for item in _list_of(payload, "priceBookProducts")],
        )

    def to_row(self, customer_group_name: str) -> dict:
        return {
            "upstream_id": self.upstream_id,
            "customer_group_name": customer_group_name,
            "name": self.name,
            "is_active": self.is_active,
            "is_global": self.is_global,
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


@dataclass
class BranchCostRecord:
    branch_id: int
    cost: float | None

    @classmethod
    def from_api(cls, payload: Any) -> "BranchCostRecord":
        payload = _require_mapping(payload, "Webhook inventory")
        return cls(
            branch_id=_require_id(payload, "BranchId", "Webhook inventory"),
            cost=_to_float(payload.get("Cost")),
        )


_MISSING = object()


@dataclass
class ProductUpdateNotification:
    """
    `product-update` webhook entity.

    Fields the upstream omitted stay None and are not compared; only keys
    actually present in the payload can produce a diff.
    """
    upstream_id: int
    code: str | None = None
    name: str | None = None
    base_price: float | None = None
    description: str | None = None
    inventories: list[BranchCostRecord] = field(default_factory=list)
    present: frozenset = frozenset()

    @classmethod
    def from_api(cls, payload: Any) -> "ProductUpdateNotification":
        payload = _require_mapping(payload, "Webhook product")
        present = {key for key in ("BasePrice", "Description", "Inventories") if payload.get(key, _MISSING) is not _MISSING}
        description = payload.get("Description")
        return cls(
            upstream_id=_require_id(payload, "Id", "Webhook product"),
            code=_to_text(payload.get("Code")),
            name=_to_text(payload.get("Name")),
            base_price=_to_float(payload.get("BasePrice")),
            description=None if description is None else str(description),
            inventories=[BranchCostRecord.from_api(item) for item in _list_of(payload, "Inventories")],
            present=frozenset(present),
        )


@dataclass
class WebhookNotification:
    action: str | None
    data: list[dict]


@dataclass
class WebhookEnvelope:
    delivery_id: str | None
    attempt: int | None
    notifications: list[WebhookNotification]

    @classmethod
    def from_api(cls, payload: Any) -> "WebhookEnvelope":
        payload = _require_mapping(payload, "Webhook")
        notifications = []
        for item in _list_of(payload, "Notifications"):
            item = _require_mapping(item, "Webhook notification")
            data = [_require_mapping(entry, "Webhook entity") for entry in _list_of(item, "Data")]
            notifications.append(WebhookNotification(action=_to_text(item.get("Action")), data=data))
        return cls(
            delivery_id=_to_text(payload.get("Id")),
            attempt=_to_int(payload.get("Attempt")),
            notifications=notifications,
        )

    def product_updates(self) -> list[ProductUpdateNotification]:
        """Every entity of every notification, decoded as a product update."""
        updates = []
        for notification in self.notifications:
            for entity in notification.data:
                updates.append(ProductUpdateNotification.from_api(entity))
        return updates
