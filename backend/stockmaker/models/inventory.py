from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class Product(db.Model):
    """
    A stock line in the shop: usually one handset (IMEI tracked) or a
    bulk accessory line counted in `unit`.

    `quantity` only moves through conditional delta updates in the sales
    service, never through read-modify-write, so it cannot go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_nonneg"),
        db.Index("ix_products_brand_model", "brand", "model"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    brand = db.Column(db.String(64), nullable=True)
    model = db.Column(db.String(128), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    storage = db.Column(db.String(64), nullable=True)
    country_variant = db.Column(db.String(8), nullable=False, default="IN")

    # 15-digit device identifier; uniqueness is checked before write
    imei = db.Column(db.String(15), nullable=True, index=True, unique=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    purchase_price_cents = db.Column(db.Integer, nullable=True)
    selling_price_cents = db.Column(db.Integer, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=True)

    sold = db.Column(db.Boolean, nullable=False, default=False, index=True)
    sold_date = db.Column(db.Date, nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def profit_cents(self) -> int | None:
        if self.purchase_price_cents is None or self.selling_price_cents is None:
            return None
        return self.selling_price_cents - self.purchase_price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "brand": self.brand,
            "model": self.model,
            "color": self.color,
            "storage": self.storage,
            "country_variant": self.country_variant,
            "imei": self.imei,
            "barcode": self.barcode,
            "unit": self.unit,
            "purchase_price_cents": self.purchase_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "profit_cents": self.profit_cents,
            "quantity": self.quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "sold": self.sold,
            "sold_date": to_iso_date(self.sold_date),
            "customer_name": self.customer_name,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
