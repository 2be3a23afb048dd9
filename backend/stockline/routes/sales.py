# backend/stockline/routes/sales.py
"""Sales API routes: checkout, lookup, void"""

from flask import Blueprint, current_app, jsonify, request

from ..services import sales_service
from ..services.errors import InvalidStateError, NotFoundError, StocklineError
from ..services.record_store import serialize_record
from ..validation import ValidationError, optional_int, parse_bool, parse_line_items


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_body(sale: dict) -> dict:
    body = serialize_record({k: v for k, v in sale.items() if k != "items"})
    body["items"] = [serialize_record(item) for item in sale.get("items", [])]
    return body


@sales_bp.post("/")
def create_sale_route():
    """
    Check out a cart.

    Body: {department_id, cashier_id, demo_mode, items: [{product_id|variant_id, quantity, ml_amount, ...}]}
    Demo-mode sales are validated but never saved and never touch stock.
    """
    try:
        data = request.get_json() or {}
        department_id = optional_int(data, "department_id")
        items = parse_line_items(data.get("items"))
        demo_mode = parse_bool(data.get("demo_mode"))

        sale = sales_service.create_sale(
            department_id,
            items,
            cashier_id=data.get("cashier_id"),
            demo_mode=demo_mode,
        )
        return jsonify({"sale": _sale_body(sale)}), 201 if not demo_mode else 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": e.message, "details": e.details}), 404
    except StocklineError as e:
        return jsonify({"error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Get sale with items."""
    try:
        sale = sales_service.get_sale(sale_id)
    except NotFoundError as e:
        return jsonify({"error": e.message}), 404
    except StocklineError as e:
        current_app.logger.exception("Failed to load sale %s", sale_id)
        return jsonify({"error": e.message}), 502
    except Exception:
        current_app.logger.exception("Failed to load sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"sale": _sale_body(sale)}), 200


@sales_bp.post("/<int:sale_id>/void")
def void_sale_route(sale_id: int):
    """
    Void a completed sale and restore its stock.

    Body: {reason, actor_id}
    409 when the sale is already voided (nothing is written).
    """
    try:
        data = request.get_json() or {}
        reason = data.get("reason")
        actor_id = data.get("actor_id")

        if not reason:
            return jsonify({"error": "reason required"}), 400
        if actor_id is None:
            return jsonify({"error": "actor_id required"}), 400

        sale = sales_service.perform_void(sale_id, reason, actor_id)

        return jsonify({
            "voided": True,
            "sale": _sale_body(sale),
            "message": sales_service.VOID_SUCCESS_MESSAGE,
        }), 200

    except NotFoundError as e:
        return jsonify({"voided": False, "error": e.message}), 404
    except InvalidStateError as e:
        return jsonify({"voided": False, "error": e.message}), 409
    except StocklineError as e:
        current_app.logger.warning("Void of sale %s failed: %s", sale_id, e.message)
        return jsonify({"voided": False, "error": e.message, "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"voided": False, "error": "Internal server error"}), 500
