# Overview: Pytest coverage for the SQL record store and the retry helper.

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stockline.models import Product, Sale, SaleLine, SALE_COMPLETED, SALE_VOIDED
from stockline.services.concurrency import run_with_retry
from stockline.services.errors import ConflictError, NotFoundError, RecordStoreError
from stockline.services.record_store import SqlRecordStore, serialize_record


@pytest.fixture
def store(db_session):
    return SqlRecordStore()


class TestReadsAndWrites:

    def test_get_returns_plain_dict(self, store, unit_product):
        record = store.get("products", {"id": unit_product.id})
        assert isinstance(record, dict)
        assert record["name"] == "Bar Soap"
        assert record["unit_stock"] == 10

    def test_get_missing_returns_none(self, store):
        assert store.get("products", {"id": 123456}) is None

    def test_list_is_ordered_by_id(self, store, unit_product, volume_product):
        names = [row["name"] for row in store.list("products")]
        assert names == ["Bar Soap", "Body Oil"]

    def test_insert_then_update(self, store, department):
        created = store.insert("products", {"department_id": department.id, "name": "Candle", "unit_stock": 2})
        assert created["id"] is not None

        updated = store.update("products", created["id"], {"unit_stock": 9, "id": 999})
        assert updated["id"] == created["id"]
        assert updated["unit_stock"] == 9

    def test_insert_ignores_server_managed_fields(self, store, department):
        created = store.insert("products", {
            "department_id": department.id,
            "name": "Wick",
            "version_id": 42,
            "created_at": "2020-01-01T00:00:00Z",
        })
        assert created["version_id"] == 1

    def test_iso_strings_become_datetimes(self, store, make_sale):
        sale = make_sale([])
        updated = store.update("sales", sale.id, {"voided_at": "2026-10-19T08:30:00Z"})
        assert updated["voided_at"] == datetime(2026, 10, 19, 8, 30)

    def test_update_missing_row(self, store):
        with pytest.raises(NotFoundError):
            store.update("products", 8080, {"unit_stock": 1})

    def test_update_with_matching_expect_writes(self, store, make_sale):
        sale = make_sale([])
        updated = store.update("sales", sale.id, {"status": SALE_VOIDED}, expect={"status": SALE_COMPLETED})
        assert updated["status"] == SALE_VOIDED

    def test_update_expect_mismatch_conflicts(self, store, db_session, make_sale):
        sale = make_sale([], status=SALE_VOIDED)
        with pytest.raises(ConflictError) as excinfo:
            store.update("sales", sale.id, {"void_reason": "again"}, expect={"status": SALE_COMPLETED})

        assert excinfo.value.details["current"] == {"status": SALE_VOIDED}
        db_session.expire_all()
        assert db_session.get(Sale, sale.id).void_reason is None

    def test_delete_cascades_to_sale_lines(self, store, db_session, unit_product, make_sale):
        sale = make_sale([{"product_id": unit_product.id, "quantity": 1}])
        assert store.delete("sales", {"id": sale.id}) == 1
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleLine).count() == 0

    def test_delete_missing_is_zero(self, store):
        assert store.delete("products", {"id": 31337}) == 0

    def test_unknown_table(self, store):
        with pytest.raises(RecordStoreError):
            store.get("customers", {"id": 1})

    def test_unknown_column(self, store, department):
        with pytest.raises(RecordStoreError):
            store.insert("products", {"department_id": department.id, "name": "X", "colour": "red"})

    def test_constraint_violation_becomes_store_error(self, store, department):
        with pytest.raises(RecordStoreError) as excinfo:
            store.insert("departments", {"name": department.name})
        assert excinfo.value.message.startswith("Record store error:")


class TestAdjust:

    def test_returns_before_and_after(self, store, unit_product, read_stock):
        assert store.adjust("products", unit_product.id, "unit_stock", -4) == (10, 6)
        assert read_stock(Product, unit_product.id, "unit_stock") == 6

    def test_clamps_at_floor(self, store, unit_product):
        before, after = store.adjust("products", unit_product.id, "unit_stock", -15)
        assert (before, after) == (10, 0)

    def test_floor_none_disables_clamping(self, store, volume_product):
        assert store.adjust("products", volume_product.id, "volume_stock", 12.5, floor=None) == (1000.0, 1012.5)

    def test_bumps_version_counter(self, store, unit_product, db_session):
        store.adjust("products", unit_product.id, "unit_stock", 1)
        db_session.expire_all()
        assert db_session.get(Product, unit_product.id).version_id == 2

    def test_missing_row(self, store):
        with pytest.raises(NotFoundError):
            store.adjust("products", 5050, "unit_stock", 1)

    def test_unknown_field(self, store, unit_product):
        with pytest.raises(RecordStoreError):
            store.adjust("products", unit_product.id, "stock_level", 1)


class TestRunWithRetry:

    class _Session:
        def __init__(self):
            self.rollbacks = 0

        def rollback(self):
            self.rollbacks += 1

    def test_retries_stale_data_then_succeeds(self):
        session = self._Session()
        sleeps = []
        outcomes = iter([StaleDataError("stale"), StaleDataError("stale"), "done"])

        def op():
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert run_with_retry(op, session=session, sleep=sleeps.append) == "done"
        assert session.rollbacks == 2
        assert sleeps == [0.1, 0.2]

    def test_gives_up_after_last_attempt(self):
        session = self._Session()

        def op():
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            run_with_retry(op, session=session, attempts=2, sleep=lambda _: None)
        assert session.rollbacks == 2

    def test_other_errors_are_not_retried(self):
        session = self._Session()
        calls = []

        def op():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            run_with_retry(op, session=session, sleep=lambda _: None)
        assert calls == [1]
        assert session.rollbacks == 0


def test_serialize_record_formats_datetimes():
    record = {"id": 1, "voided_at": datetime(2026, 10, 19, 8, 30), "void_reason": None}
    body = serialize_record(record)
    assert body["voided_at"].endswith("Z")
    assert body["id"] == 1
    assert serialize_record(None) is None
