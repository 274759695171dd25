from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SALE_TYPE_SALE = "SALE"
SALE_TYPE_SERVICE = "SERVICE"
SALE_TYPE_RETURN = "RETURN"
SALE_TYPE_REFUND = "REFUND"
SALE_TYPE_EXCHANGE = "EXCHANGE"

SALE_TYPES = (SALE_TYPE_SALE, SALE_TYPE_SERVICE, SALE_TYPE_RETURN, SALE_TYPE_REFUND, SALE_TYPE_EXCHANGE)
ORIGINATING_TYPES = (SALE_TYPE_SALE, SALE_TYPE_SERVICE)
RETURN_FAMILY_TYPES = (SALE_TYPE_RETURN, SALE_TYPE_REFUND, SALE_TYPE_EXCHANGE)

PAYMENT_METHODS = ("PIX", "CARD", "BANK_SLIP", "CASH")


class Sale(db.Model):
    """
    Point-of-sale transaction row.

    SALE/SERVICE rows originate business; RETURN/REFUND/EXCHANGE rows point
    back at them through original_sale_id, which is a soft reference resolved
    by lookup (no foreign key). Exchanges also write synthetic SALE/REFUND
    rows that only record the price delta.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_company_type_created", "company_id", "type", "created_at"),
        db.Index("ix_sales_company_customer", "company_id", "customer_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_document = db.Column(db.String(32), nullable=True, index=True)
    customer_email = db.Column(db.String(255), nullable=True)

    payment_method = db.Column(db.String(16), nullable=True)

    # Refund amount, or the money side of an exchange settlement row
    amount = db.Column(db.Numeric(12, 2), nullable=True)

    return_action = db.Column(db.String(16), nullable=True)
    original_sale_id = db.Column(db.Integer, nullable=True, index=True)
    exchange_product_id = db.Column(db.Integer, nullable=True)
    exchange_quantity = db.Column(db.Numeric(12, 3), nullable=True)

    observations = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return f"<Sale id={self.id} type={self.type} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "customer_name": self.customer_name,
            "customer_document": self.customer_document,
            "customer_email": self.customer_email,
            "payment_method": self.payment_method,
            "amount": str(self.amount) if self.amount is not None else None,
            "return_action": self.return_action,
            "original_sale_id": self.original_sale_id,
            "exchange_product_id": self.exchange_product_id,
            "exchange_quantity": str(self.exchange_quantity) if self.exchange_quantity is not None else None,
            "observations": self.observations,
            "created_at": to_utc_z(self.created_at),
            "unit_ids": [u.id for u in self.units],
        }
