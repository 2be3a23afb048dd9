# backend/stockline/routes/stock.py
"""
Stock availability routes (read-only pre-flight checks).

A missing product/variant is not an error here: the response is
200 with available=false and a message, same as insufficient stock.
"""
from flask import Blueprint, jsonify, request

from ..services import stock_service
from ..validation import ValidationError, optional_float, require_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/products/<int:product_id>/availability")
def product_availability(product_id: int):
    try:
        quantity = require_int(request.args, "quantity", minimum=0)
        ml_amount = optional_float(request.args, "ml_amount", minimum=0)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    result = stock_service.check_stock_availability(
        product_id,
        quantity,
        request.args.get("tracking"),
        ml_amount,
    )
    return jsonify(result.to_dict()), 200


@stock_bp.get("/variants/<int:variant_id>/availability")
def variant_availability(variant_id: int):
    try:
        quantity = require_int(request.args, "quantity", minimum=0)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    result = stock_service.check_variant_stock_availability(variant_id, quantity)
    return jsonify(result.to_dict()), 200
