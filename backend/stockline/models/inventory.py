from __future__ import annotations

from ..extensions import db

TRACKING_UNIT = "unit"
TRACKING_VOLUME = "volume"
TRACKING_MODES = (TRACKING_UNIT, TRACKING_VOLUME)


class Department(db.Model):
    """A selling department (retail, perfume bar, mobile-money agency)."""
    __tablename__ = "departments"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class Product(db.Model):
    """
    Sellable item.

    QUANTITY DESIGN:
    Exactly one stock field is authoritative, chosen by tracking_mode:
    - unit   -> unit_stock (integer count)
    - volume -> volume_stock (milliliters)
    The other field is ignored. tracking_mode may be NULL on legacy rows; readers
    then fall back to a caller-supplied hint.

    Neither field ever goes negative: every decrement clamps at zero.

    version_id is the optimistic concurrency counter. A stock write that races
    another writer raises StaleDataError and is retried by the service layer.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_department_name", "department_id", "name"),
        db.CheckConstraint("unit_stock >= 0", name="ck_products_unit_stock_nonneg"),
        db.CheckConstraint("volume_stock >= 0", name="ck_products_volume_stock_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    tracking_mode = db.Column(db.String(16), nullable=True)

    unit_stock = db.Column(db.Integer, nullable=False, default=0)
    volume_stock = db.Column(db.Float, nullable=False, default=0.0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    department = db.relationship("Department", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} tracking_mode={self.tracking_mode!r}>"


class ProductVariant(db.Model):
    """Stock-bearing sub-item of a product (size, flavor). Stock is independent of the parent's."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_product_variants_stock_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} product_id={self.product_id} stock={self.stock}>"
