from __future__ import annotations

from decimal import Decimal

from sqlalchemy import and_, or_

from ..extensions import db
from ..time_utils import to_utc_z

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT)

RETURN_ACTION_RESTOCK = "RESTOCK"
RETURN_ACTION_MAINTENANCE = "MAINTENANCE"
RETURN_ACTIONS = (RETURN_ACTION_RESTOCK, RETURN_ACTION_MAINTENANCE)


def _dec(value) -> str | None:
    return None if value is None else str(value)


class Product(db.Model):
    """
    Product catalog row.

    The catalog owns identity, pricing and the service flag. The engine only
    mutates current_stock and last_movement_at, always together with a
    StockMovement row.

    initial_stock is the stock the product was created with; it anchors the
    ledger invariant: initial_stock + SUM(+IN, -OUT) == current_stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_company_name", "company_id", "name"),
        db.Index("ix_products_company_barcode", "company_id", "barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)

    current_stock = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    initial_stock = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))

    unit_price = db.Column(db.Numeric(12, 2), nullable=True)
    cost_price = db.Column(db.Numeric(12, 2), nullable=True)

    is_service = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    last_movement_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __init__(self, **kwargs):
        # Products created with stock remember it as their ledger baseline
        if "current_stock" in kwargs and "initial_stock" not in kwargs:
            kwargs["initial_stock"] = kwargs["current_stock"]
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} company_id={self.company_id}>"

    @property
    def unit_base_code(self) -> str:
        return self.barcode or f"PROD-{self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "barcode": self.barcode,
            "current_stock": _dec(self.current_stock),
            "unit_price": _dec(self.unit_price),
            "cost_price": _dec(self.cost_price),
            "is_service": self.is_service,
            "is_active": self.is_active,
            "last_movement_at": to_utc_z(self.last_movement_at),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """Append-only stock ledger row. Never updated or deleted by the engine."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_company_created", "company_id", "created_at"),
        db.Index("ix_movements_company_product_type", "company_id", "product_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    user_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    @property
    def signed_quantity(self) -> Decimal:
        return self.quantity if self.type == MOVEMENT_IN else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": _dec(self.quantity),
            "reason": self.reason,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProductUnit(db.Model):
    """
    One individually barcoded physical unit of a product.

    Lifecycle: created (available) -> sold -> returned.
    A unit returned with RESTOCK is back on the shelf and counts as available;
    a unit returned for MAINTENANCE stays out of the sellable pool.
    """
    __tablename__ = "product_units"
    __table_args__ = (
        db.UniqueConstraint("company_id", "barcode", name="uq_product_units_company_barcode"),
        db.Index("ix_product_units_product_state", "product_id", "is_sold", "is_returned"),
        db.Index("ix_product_units_company_created", "company_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    barcode = db.Column(db.String(96), nullable=False)

    is_sold = db.Column(db.Boolean, nullable=False, default=False)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    seller_name = db.Column(db.String(255), nullable=True)
    attendant_name = db.Column(db.String(255), nullable=True)
    buyer_description = db.Column(db.Text, nullable=True)
    payment_methods = db.Column(db.String(255), nullable=True)
    sale_description = db.Column(db.Text, nullable=True)

    is_returned = db.Column(db.Boolean, nullable=False, default=False)
    return_action = db.Column(db.String(16), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("units", lazy="dynamic"))
    sale = db.relationship("Sale", backref=db.backref("units", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @classmethod
    def available_clause(cls):
        """SQL predicate for units that can be sold right now."""
        return or_(
            cls.is_sold.is_(False),
            and_(cls.is_returned.is_(True), cls.return_action == RETURN_ACTION_RESTOCK),
        )

    @property
    def is_available(self) -> bool:
        if not self.is_sold:
            return True
        return bool(self.is_returned and self.return_action == RETURN_ACTION_RESTOCK)

    @property
    def is_outstanding(self) -> bool:
        """Sold and still in the customer's hands."""
        return bool(self.is_sold and not self.is_returned)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "barcode": self.barcode,
            "is_sold": self.is_sold,
            "sold_at": to_utc_z(self.sold_at),
            "sale_id": self.sale_id,
            "seller_name": self.seller_name,
            "attendant_name": self.attendant_name,
            "buyer_description": self.buyer_description,
            "payment_methods": self.payment_methods,
            "sale_description": self.sale_description,
            "is_returned": self.is_returned,
            "return_action": self.return_action,
            "returned_at": to_utc_z(self.returned_at),
            "created_at": to_utc_z(self.created_at),
        }
