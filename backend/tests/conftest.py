"""
Pytest fixtures for stockline backend tests.

Provides the test app (in-memory SQLite, temp offline queue file), per-test
table cleanup, seeded stock records, and a record store that fails on demand.
"""

import pytest

from stockline import create_app
from stockline.extensions import db
from stockline.models import (
    Department, Product, ProductVariant, Sale, SaleLine,
    TRACKING_UNIT, TRACKING_VOLUME, SALE_COMPLETED,
)
from stockline.services.errors import RecordStoreError
from stockline.services.record_store import SqlRecordStore


WRITE_METHODS = {"insert", "update", "delete", "adjust"}


class FlakyStore(SqlRecordStore):
    """
    SqlRecordStore that records every call and raises RecordStoreError for
    calls matching a configured rule (simulated transport failure).
    """

    def __init__(self):
        super().__init__()
        self.calls = []
        self._rules = []

    def fail_on(self, method, table=None, record_id=None):
        self._rules.append((method, table, record_id))
        return self

    def _check(self, method, table, record_id=None):
        self.calls.append((method, table, record_id))
        for rule_method, rule_table, rule_id in self._rules:
            if rule_method != method:
                continue
            if rule_table is not None and rule_table != table:
                continue
            if rule_id is not None and rule_id != record_id:
                continue
            raise RecordStoreError(f"simulated {method} failure on {table}")

    @property
    def writes(self):
        return [call for call in self.calls if call[0] in WRITE_METHODS]

    def get(self, table, filters):
        self._check("get", table, (filters or {}).get("id"))
        return super().get(table, filters)

    def list(self, table, filters=None):
        self._check("list", table)
        return super().list(table, filters)

    def insert(self, table, data, *, upsert=False):
        self._check("insert", table, (data or {}).get("id"))
        return super().insert(table, data, upsert=upsert)

    def update(self, table, record_id, patch, *, expect=None):
        self._check("update", table, record_id)
        return super().update(table, record_id, patch, expect=expect)

    def delete(self, table, filters):
        self._check("delete", table, (filters or {}).get("id"))
        return super().delete(table, filters)

    def adjust(self, table, record_id, field, delta, *, floor=0):
        self._check("adjust", table, record_id)
        return super().adjust(table, record_id, field, delta, floor=floor)


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    queue_dir = tmp_path_factory.mktemp("offline")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'OFFLINE_QUEUE_PATH': str(queue_dir / "queue.json"),
        'MASTER_VOLUME_PRODUCT_NAME': 'Oil Perfume',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables and an empty offline queue for each test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app.extensions["offline_queue"].clear()

        yield db.session

        db.session.rollback()


@pytest.fixture
def flaky_store(db_session):
    return FlakyStore()


@pytest.fixture
def department(db_session):
    dept = Department(name="Perfume Bar")
    db_session.add(dept)
    db_session.commit()
    return dept


@pytest.fixture
def unit_product(db_session, department):
    product = Product(department_id=department.id, name="Bar Soap", tracking_mode=TRACKING_UNIT, unit_stock=10)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def volume_product(db_session, department):
    product = Product(department_id=department.id, name="Body Oil", tracking_mode=TRACKING_VOLUME, volume_stock=1000.0)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def master_product(db_session, department):
    product = Product(department_id=department.id, name="Oil Perfume", tracking_mode=TRACKING_VOLUME, volume_stock=500.0)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def variant(db_session, department):
    parent = Product(department_id=department.id, name="T-Shirt", tracking_mode=TRACKING_UNIT, unit_stock=7)
    db_session.add(parent)
    db_session.flush()
    v = ProductVariant(product_id=parent.id, name="T-Shirt / M", stock=5)
    db_session.add(v)
    db_session.commit()
    return v


@pytest.fixture
def make_sale(db_session, department):
    """Persist a sale with the given line dicts, bypassing checkout."""
    def _make(lines, status=SALE_COMPLETED):
        sale = Sale(department_id=department.id, status=status, cashier_id="cashier-1")
        db_session.add(sale)
        db_session.flush()
        for line in lines:
            db_session.add(SaleLine(sale_id=sale.id, **line))
        db_session.commit()
        return sale
    return _make


@pytest.fixture
def read_stock(db_session):
    """Re-read a stock field straight from the database."""
    def _read(model, record_id, field):
        db_session.expire_all()
        return getattr(db_session.get(model, record_id), field)
    return _read
