from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date

# Sale payment statuses
STATUS_PENDING = "pending"
STATUS_PARTIAL = "partial"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"
SALE_STATUSES = (STATUS_PENDING, STATUS_PARTIAL, STATUS_PAID, STATUS_OVERDUE)


class Sale(db.Model):
    """
    A credit sale of one product line to a merchant.

    Money columns hold paise. paid + remaining == total is maintained by
    the bookkeeping helpers; paid always equals the sum of the sale's
    Payment rows.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_due", "payment_status", "due_date"),
        db.CheckConstraint("quantity >= 1", name="ck_sales_quantity_positive"),
        db.CheckConstraint(
            "rate_cents >= 0 AND paid_amount_cents >= 0 AND remaining_amount_cents >= 0",
            name="ck_sales_money_nonneg",
        ),
        db.CheckConstraint(
            "paid_amount_cents + remaining_amount_cents = total_amount_cents",
            name="ck_sales_amounts_balance",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    rate_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.BigInteger, nullable=False)
    paid_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.BigInteger, nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    sale_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    merchant = db.relationship("Merchant")
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_refs: bool = False) -> dict:
        data = {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "rate_cents": self.rate_cents,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "payment_status": self.payment_status,
            "sale_date": to_iso_date(self.sale_date),
            "due_date": to_iso_date(self.due_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_refs:
            data["merchant"] = {
                "id": self.merchant.id,
                "name": self.merchant.name,
                "contact": self.merchant.contact,
                "email": self.merchant.email,
            } if self.merchant else None
            data["product"] = {
                "id": self.product.id,
                "name": self.product.name,
                "brand": self.product.brand,
                "model": self.product.model,
                "imei": self.product.imei,
            } if self.product else None
        return data


class Payment(db.Model):
    """
    Money received against a sale. Append-only; rows are removed only
    when their sale (or merchant) is deleted.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_payments_amount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    amount_cents = db.Column(db.BigInteger, nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")  # cash, upi, bank, cheque, other
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "merchant_id": self.merchant_id,
            "amount_cents": self.amount_cents,
            "payment_date": to_iso_date(self.payment_date),
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
