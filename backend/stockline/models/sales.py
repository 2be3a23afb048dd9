from __future__ import annotations

from ..extensions import db

SALE_COMPLETED = "completed"
SALE_VOIDED = "voided"


class Sale(db.Model):
    """
    Committed sale.

    Lifecycle: created COMPLETED at checkout, transitions once to VOIDED.
    VOIDED is terminal.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_department_status_created", "department_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)

    cashier_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.String(64), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        order_by="SaleLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}


class SaleLine(db.Model):
    """
    One line of a committed sale.

    is_scent_mixture: custom blend with no stock record of its own; never restored.
    is_perfume_refill: volume drawn from the department's shared master product.
    """
    __tablename__ = "sale_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    ml_amount = db.Column(db.Float, nullable=True)

    is_scent_mixture = db.Column(db.Boolean, nullable=False, default=False)
    is_perfume_refill = db.Column(db.Boolean, nullable=False, default=False)

    product = db.relationship("Product", foreign_keys=[product_id])
    variant = db.relationship("ProductVariant", foreign_keys=[variant_id])
