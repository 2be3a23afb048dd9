# Overview: Service-layer operations for on-hand stock; availability checks, sale decrements and void restorations.

"""
Stock Invariants (authoritative)

Quantity fields:
- products.unit_stock   : integer units, authoritative when tracking_mode='unit'
- products.volume_stock : milliliters, authoritative when tracking_mode='volume'
- product_variants.stock: integer units, independent of the parent product
No stock field ever goes negative; every decrement clamps at zero.

Sale decrement (reduce_stock), per line:
- demo mode                       -> no writes at all, report success
- scent mixture                   -> skipped (no stock record of its own)
- variant line                    -> variant.stock -= quantity
- perfume refill with ml_amount   -> department master volume product -= ml_amount
- product line, volume + ml_amount-> product.volume_stock -= ml_amount
- product line otherwise          -> product.unit_stock -= quantity

Void restoration (restore_stock), per line, mirrors the decrement:
- scent mixture                   -> skipped
- variant line                    -> variant.stock += quantity
- volume product                  -> product.volume_stock += (ml_amount or quantity)
- unit product                    -> product.unit_stock += quantity
- perfume refill with ml_amount   -> skipped and logged (drawn from the master pool,
                                     even when the line carries a product_id)
- no product/variant reference    -> skipped and logged

Atomicity:
- The record store has no multi-row transaction. Each line's change is its own
  committed adjust() call, recorded in an AdjustmentLog. When any line fails,
  the already-applied changes are replayed inversely before the failure is
  reported, so a failed sale or void never leaves stock half-mutated.
- The log records the change actually applied (after clamping), so the inverse
  is exact even when a decrement hit zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from flask import current_app, has_app_context

from ..models import TRACKING_VOLUME
from .errors import NotFoundError, StockError, StocklineError
from .record_store import RecordStore, SqlRecordStore

log = logging.getLogger(__name__)

DEFAULT_MASTER_VOLUME_PRODUCT_NAME = "Oil Perfume"

# Caller-supplied tracking hints that mean "count in milliliters"
VOLUME_TRACKING_HINTS = {"ml", "milliliter", "millilitre", TRACKING_VOLUME}


@dataclass(frozen=True)
class Availability:
    available: bool
    current_stock: float
    message: str | None = None

    def to_dict(self) -> dict:
        data = {"available": self.available, "current_stock": self.current_stock}
        if self.message is not None:
            data["message"] = self.message
        return data


@dataclass(frozen=True)
class StockResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class LineItem:
    """A sale line as seen by the stock services."""
    quantity: int
    product_id: int | None = None
    variant_id: int | None = None
    ml_amount: float | None = None
    is_scent_mixture: bool = False
    is_perfume_refill: bool = False
    name: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        return cls(
            quantity=int(data.get("quantity") or 0),
            product_id=data.get("product_id"),
            variant_id=data.get("variant_id"),
            ml_amount=data.get("ml_amount"),
            is_scent_mixture=bool(data.get("is_scent_mixture", False)),
            is_perfume_refill=bool(data.get("is_perfume_refill", False)),
            name=data.get("name"),
        )

    def to_record(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "quantity": self.quantity,
            "ml_amount": self.ml_amount,
            "is_scent_mixture": self.is_scent_mixture,
            "is_perfume_refill": self.is_perfume_refill,
        }


@dataclass(frozen=True)
class StockAdjustment:
    table: str
    record_id: Any
    field: str
    applied_delta: float


@dataclass
class AdjustmentLog:
    """Stock changes applied during one multi-line operation, replayable in reverse."""
    store: RecordStore
    applied: list[StockAdjustment] = field(default_factory=list)

    def apply(self, table: str, record_id: Any, field_name: str, delta: float) -> StockAdjustment:
        before, after = self.store.adjust(table, record_id, field_name, delta, floor=0)
        adjustment = StockAdjustment(table, record_id, field_name, after - before)
        self.applied.append(adjustment)
        return adjustment

    def compensate(self) -> list[StockAdjustment]:
        """
        Undo applied changes, newest first. Returns the adjustments that could
        not be reverted (each is logged); the log is empty afterwards.
        """
        unreverted = []
        for adjustment in reversed(self.applied):
            if not adjustment.applied_delta:
                continue
            try:
                self.store.adjust(
                    adjustment.table,
                    adjustment.record_id,
                    adjustment.field,
                    -adjustment.applied_delta,
                    floor=0,
                )
            except StocklineError as exc:
                log.error(
                    "Could not revert %s.%s on id=%s by %s: %s",
                    adjustment.table, adjustment.field, adjustment.record_id,
                    -adjustment.applied_delta, exc,
                )
                unreverted.append(adjustment)
        if self.applied:
            log.warning("Compensated %d stock adjustment(s)", len(self.applied) - len(unreverted))
        self.applied = []
        return unreverted


def _config(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _store(store: RecordStore | None) -> RecordStore:
    return store if store is not None else SqlRecordStore()


def is_volume_tracked(tracking_mode: str | None, tracking_hint: str | None = None) -> bool:
    """Stored tracking mode wins; the hint only applies when the record has none."""
    if tracking_mode:
        return tracking_mode == TRACKING_VOLUME
    return (tracking_hint or "").strip().lower() in VOLUME_TRACKING_HINTS


# ---------------------------------------------------------------------------
# Availability (read-only)
# ---------------------------------------------------------------------------

def check_stock_availability(
    product_id,
    quantity: int,
    tracking_hint: str | None = None,
    ml_amount: float | None = None,
    *,
    store: RecordStore | None = None,
) -> Availability:
    """
    Pre-flight stock lookup for a product line. Never raises: a missing
    product or a failed read is reported as unavailable with a message.
    """
    try:
        product = _store(store).get("products", {"id": product_id})
    except StocklineError as exc:
        log.warning("Stock lookup failed for product %s: %s", product_id, exc)
        return Availability(False, 0, "Could not read current stock")

    if not product:
        return Availability(False, 0, "Product not found")

    volume = is_volume_tracked(product.get("tracking_mode"), tracking_hint)
    current_stock = (product.get("volume_stock") if volume else product.get("unit_stock")) or 0
    required = ml_amount if volume and ml_amount else quantity
    available = current_stock >= required

    return Availability(
        available,
        current_stock,
        None if available else f"Insufficient stock for {product.get('name')}. Available: {current_stock}",
    )


def check_variant_stock_availability(variant_id, quantity: int, *, store: RecordStore | None = None) -> Availability:
    try:
        variant = _store(store).get("product_variants", {"id": variant_id})
    except StocklineError as exc:
        log.warning("Stock lookup failed for variant %s: %s", variant_id, exc)
        return Availability(False, 0, "Could not read current stock")

    if not variant:
        return Availability(False, 0, "Variant not found")

    current_stock = variant.get("stock") or 0
    available = current_stock >= quantity
    return Availability(
        available,
        current_stock,
        None if available else f"Insufficient stock for {variant.get('name')}. Available: {current_stock}",
    )


def find_master_volume_product(department_id, *, store: RecordStore | None = None) -> dict | None:
    """The department's shared volume pool that perfume refills draw from."""
    return _store(store).get(
        "products",
        {
            "name": _config("MASTER_VOLUME_PRODUCT_NAME", DEFAULT_MASTER_VOLUME_PRODUCT_NAME),
            "tracking_mode": TRACKING_VOLUME,
            "department_id": department_id,
        },
    )


def check_line_availability(item: LineItem, department_id, *, store: RecordStore | None = None) -> Availability | None:
    """Availability for one candidate line, or None when the line is not stock-backed."""
    if item.is_scent_mixture:
        return None
    if item.variant_id:
        return check_variant_stock_availability(item.variant_id, item.quantity, store=store)
    if item.is_perfume_refill and item.ml_amount:
        try:
            master = find_master_volume_product(department_id, store=store)
        except StocklineError as exc:
            log.warning("Master volume lookup failed for department %s: %s", department_id, exc)
            return Availability(False, 0, "Could not read current stock")
        if not master:
            return Availability(False, 0, "Master volume product not found")
        return check_stock_availability(master["id"], item.quantity, TRACKING_VOLUME, item.ml_amount, store=store)
    if item.product_id:
        return check_stock_availability(item.product_id, item.quantity, None, item.ml_amount, store=store)
    return None


# ---------------------------------------------------------------------------
# Sale decrement
# ---------------------------------------------------------------------------

def _reduce_line(ledger: AdjustmentLog, item: LineItem, department_id) -> None:
    store = ledger.store

    if item.is_scent_mixture:
        return

    if item.variant_id:
        ledger.apply("product_variants", item.variant_id, "stock", -item.quantity)
        return

    if item.is_perfume_refill and item.ml_amount:
        master = find_master_volume_product(department_id, store=store)
        if not master:
            raise NotFoundError(
                "Master volume product not found",
                details={"department_id": department_id},
            )
        ledger.apply("products", master["id"], "volume_stock", -item.ml_amount)
        return

    if not item.product_id:
        # Services and other lines without a stock record
        return

    product = store.get("products", {"id": item.product_id})
    if not product:
        raise NotFoundError("Product not found", details={"product_id": item.product_id})

    if product.get("tracking_mode") == TRACKING_VOLUME and item.ml_amount:
        ledger.apply("products", item.product_id, "volume_stock", -item.ml_amount)
    else:
        ledger.apply("products", item.product_id, "unit_stock", -item.quantity)


def _failure(ledger: AdjustmentLog, exc: StocklineError, action: str) -> StockError:
    unreverted = ledger.compensate()
    details = dict(exc.details)
    if unreverted:
        details["unreverted"] = [
            {"table": a.table, "id": a.record_id, "field": a.field, "delta": a.applied_delta}
            for a in unreverted
        ]
    return StockError(exc.message or f"Failed to {action}", details=details)


def apply_reduction(items: Iterable[LineItem], department_id, *, store: RecordStore | None = None) -> AdjustmentLog:
    """Decrement stock for every line; raises StockError after compensating on failure."""
    ledger = AdjustmentLog(_store(store))
    try:
        for item in items:
            if isinstance(item, dict):
                item = LineItem.from_dict(item)
            _reduce_line(ledger, item, department_id)
    except StocklineError as exc:
        raise _failure(ledger, exc, "reduce stock") from exc
    return ledger


def reduce_stock(items: Iterable[LineItem], department_id, demo_mode: bool, *, store: RecordStore | None = None) -> StockResult:
    """
    Apply a committed sale's decrements.

    demo_mode is checked before anything else: demo sales never touch inventory.
    """
    items = list(items)
    if demo_mode:
        log.info("Demo mode: simulated stock reduction for %d line(s), nothing saved", len(items))
        return StockResult(True)

    try:
        apply_reduction(items, department_id, store=store)
    except StockError as exc:
        log.error("Stock reduction failed: %s", exc.message)
        return StockResult(False, exc.message)
    return StockResult(True)


# ---------------------------------------------------------------------------
# Void restoration
# ---------------------------------------------------------------------------

def _restore_line(ledger: AdjustmentLog, item: dict) -> None:
    store = ledger.store

    if item.get("is_scent_mixture"):
        log.info("Skipping stock restoration for scent mixture line %s (%s)", item.get("id"), item.get("name"))
        return

    quantity = item.get("quantity") or 0

    if item.get("variant_id"):
        ledger.apply("product_variants", item["variant_id"], "stock", quantity)
        return

    if item.get("is_perfume_refill") and item.get("ml_amount"):
        # Drawn from the master pool at sale time, whatever product_id it carries
        log.warning(
            "Sale line %s is a perfume refill of %s ml from the master pool; nothing restored",
            item.get("id"), item.get("ml_amount"),
        )
        return

    if not item.get("product_id"):
        log.warning("Sale line %s has no product or variant reference; nothing restored", item.get("id"))
        return

    product = store.get("products", {"id": item["product_id"]})
    if not product:
        raise NotFoundError("Product not found", details={"product_id": item["product_id"]})

    if product.get("tracking_mode") == TRACKING_VOLUME:
        ledger.apply("products", item["product_id"], "volume_stock", item.get("ml_amount") or quantity)
    else:
        ledger.apply("products", item["product_id"], "unit_stock", quantity)


def apply_restoration(items: Iterable[dict], *, store: RecordStore | None = None) -> AdjustmentLog:
    """
    Re-credit stock for sale line records. Lines are independent of each other;
    any failure compensates the ones already applied and raises StockError.
    The returned log lets the caller undo the restoration if a later step fails.
    """
    ledger = AdjustmentLog(_store(store))
    try:
        for item in items:
            _restore_line(ledger, item)
    except StocklineError as exc:
        raise _failure(ledger, exc, "restore stock") from exc
    return ledger


def restore_stock(sale_id, *, store: RecordStore | None = None) -> StockResult:
    """Reverse the stock effect of every line of a committed sale."""
    store = _store(store)
    try:
        items = store.list("sale_items", {"sale_id": sale_id})
        apply_restoration(items, store=store)
    except StocklineError as exc:
        log.error("Stock restore failed for sale %s: %s", sale_id, exc.message)
        return StockResult(False, exc.message or "Failed to restore stock")
    return StockResult(True)
