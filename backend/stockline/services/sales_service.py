"""
Sales Service - checkout and void orchestration

Sale lifecycle: completed -> voided (terminal).

Void ordering:
1. Read the sale and its lines
2. Reject if already voided (no writes)
3. Claim the sale: status completed -> voided, written only if the row is
   still completed under its row lock. A concurrent void that got there first
   makes this step fail, so stock is restored at most once.
4. Restore stock for every line (compensated on partial failure)
If step 4 fails, the claim is released (status back to completed, audit
columns cleared), so the sale stays completed with stock exactly as it was.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ..models import SALE_COMPLETED, SALE_VOIDED
from ..time_utils import utcnow
from .errors import ConflictError, InvalidStateError, NotFoundError, StockError, StocklineError
from .notifications import LogNotifier, Notifier
from .record_store import RecordStore, SqlRecordStore
from .stock_service import LineItem, apply_reduction, apply_restoration, check_line_availability

log = logging.getLogger(__name__)

VOID_SUCCESS_MESSAGE = "Sale voided successfully. Stock has been restored."
ALREADY_VOIDED_MESSAGE = "This sale has already been voided"


class SaleError(StocklineError):
    """Raised for checkout errors."""


def _store(store: RecordStore | None) -> RecordStore:
    return store if store is not None else SqlRecordStore()


def _stock_target(item: LineItem):
    """Key of the stock record a line draws from, or None when it draws from none."""
    if item.is_scent_mixture:
        return None
    if item.variant_id:
        return ("variant", item.variant_id)
    if item.is_perfume_refill and item.ml_amount:
        return ("master_pool",)
    if item.product_id:
        return ("product", item.product_id, bool(item.ml_amount))
    return None


def _combine_by_target(items: list[LineItem]) -> list[LineItem]:
    """One line per stock record, with quantities and ml amounts summed."""
    combined: dict[tuple, LineItem] = {}
    for item in items:
        key = _stock_target(item)
        if key is None:
            continue
        seen = combined.get(key)
        if seen is None:
            combined[key] = item
            continue
        combined[key] = replace(
            seen,
            quantity=seen.quantity + item.quantity,
            ml_amount=seen.ml_amount + item.ml_amount if seen.ml_amount else None,
        )
    return list(combined.values())


def _validate_availability(items: list[LineItem], department_id, store: RecordStore) -> None:
    """Lines drawing on the same stock record are checked against it together."""
    insufficient = []
    for item in _combine_by_target(items):
        availability = check_line_availability(item, department_id, store=store)
        if availability is not None and not availability.available:
            insufficient.append({
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "requested_quantity": item.quantity,
                "ml_amount": item.ml_amount,
                "current_stock": availability.current_stock,
                "message": availability.message,
            })

    if insufficient:
        raise SaleError("Insufficient stock to complete sale", details={"items": insufficient})


def create_sale(department_id, items, cashier_id=None, demo_mode: bool = False, *, store: RecordStore | None = None) -> dict:
    """
    Check out a cart: pre-flight availability, persist the sale, decrement stock.

    In demo mode the sale is simulated: availability is still checked, but
    nothing is written and the returned sale has no id.
    """
    store = _store(store)
    lines = [item if isinstance(item, LineItem) else LineItem.from_dict(item) for item in items]
    if not lines:
        raise SaleError("Cannot create a sale with no items")
    for line in lines:
        if line.quantity <= 0:
            raise SaleError("Quantity must be positive", details={"item": line.to_record()})

    _validate_availability(lines, department_id, store)

    if demo_mode:
        log.info("Demo mode: simulated sale of %d line(s) for department %s", len(lines), department_id)
        return {
            "id": None,
            "department_id": department_id,
            "status": SALE_COMPLETED,
            "cashier_id": cashier_id,
            "demo": True,
            "items": [line.to_record() for line in lines],
        }

    sale = store.insert("sales", {
        "department_id": department_id,
        "status": SALE_COMPLETED,
        "cashier_id": cashier_id,
    })

    try:
        records = [store.insert("sale_items", {**line.to_record(), "sale_id": sale["id"]}) for line in lines]
        apply_reduction(lines, department_id, store=store)
    except StocklineError:
        # Line inserts cascade with the sale
        store.delete("sales", {"id": sale["id"]})
        raise

    sale["items"] = records
    return sale


def get_sale(sale_id, *, store: RecordStore | None = None) -> dict:
    store = _store(store)
    sale = store.get("sales", {"id": sale_id})
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    sale["items"] = store.list("sale_items", {"sale_id": sale_id})
    return sale


def perform_void(sale_id, reason: str, actor_id, *, store: RecordStore | None = None) -> dict:
    """
    Void a completed sale and restore its stock. Raises on every failure:
    NotFoundError, InvalidStateError (already voided), StockError.
    """
    store = _store(store)
    sale = get_sale(sale_id, store=store)

    if sale["status"] == SALE_VOIDED:
        raise InvalidStateError(ALREADY_VOIDED_MESSAGE, details={"sale_id": sale_id})

    try:
        voided = store.update(
            "sales",
            sale_id,
            {
                "status": SALE_VOIDED,
                "voided_at": utcnow(),
                "voided_by": None if actor_id is None else str(actor_id),
                "void_reason": reason,
            },
            expect={"status": SALE_COMPLETED},
        )
    except ConflictError as exc:
        raise InvalidStateError(ALREADY_VOIDED_MESSAGE, details={"sale_id": sale_id}) from exc
    except NotFoundError:
        raise
    except StocklineError as exc:
        raise StockError(exc.message or "Failed to void sale", details={"sale_id": sale_id}) from exc

    try:
        apply_restoration(sale["items"], store=store)
    except StocklineError:
        _release_claim(store, sale_id)
        raise

    voided["items"] = sale["items"]
    return voided


def _release_claim(store: RecordStore, sale_id) -> None:
    try:
        store.update(
            "sales",
            sale_id,
            {"status": SALE_COMPLETED, "voided_at": None, "voided_by": None, "void_reason": None},
            expect={"status": SALE_VOIDED},
        )
    except StocklineError as exc:
        log.error("Sale %s stock was not restored but it could not be reset to completed: %s", sale_id, exc.message)


def void_sale(sale_id, reason: str, actor_id, *, store: RecordStore | None = None, notifier: Notifier | None = None) -> bool:
    """
    Void a sale for an operator: returns True on success, False otherwise, and
    reports the outcome through the notifier instead of raising.
    """
    notifier = notifier or LogNotifier()
    try:
        perform_void(sale_id, reason, actor_id, store=store)
    except InvalidStateError as exc:
        notifier.error(exc.message)
        return False
    except StocklineError as exc:
        log.error("Error voiding sale %s: %s", sale_id, exc.message)
        notifier.error(exc.message or "Failed to void sale")
        return False

    notifier.success(VOID_SUCCESS_MESSAGE)
    return True
