from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class Merchant(db.Model):
    """
    A vyapari: a trader who buys stock on credit (udhari).

    The three money aggregates are cached sums over the merchant's sales
    and are only ever written by bookkeeping.recompute_merchant_aggregates.
    No one-to-many relationship is mapped here; child rows are removed
    explicitly by the merchant service.
    """
    __tablename__ = "merchants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    contact = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    total_purchased_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_paid_cents = db.Column(db.BigInteger, nullable=False, default=0)
    remaining_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    credit_score = db.Column(db.Integer, nullable=False, default=100)
    last_transaction_date = db.Column(db.Date, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "email": self.email,
            "address": self.address,
            "total_purchased_cents": self.total_purchased_cents,
            "total_paid_cents": self.total_paid_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "credit_score": self.credit_score,
            "last_transaction_date": to_iso_date(self.last_transaction_date),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
