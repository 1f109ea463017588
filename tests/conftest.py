import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import threading
from collections import defaultdict
from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cart_engine.data.database import Base
from cart_engine.data.models import CartModel, DiscountCodeModel
from cart_engine.domain.errors import NotFoundError
from cart_engine.domain.schemas import PricingSnapshot
from cart_engine.services.cart_service import CartService
from cart_engine.services.merge_service import MergeService

CATALOG = {
    ("P", None): PricingSnapshot(title="Product P", unit_price=1500, image_url="https://img/p.png"),
    ("A", None): PricingSnapshot(title="Product A", unit_price=1000),
    ("A", "A-RED"): PricingSnapshot(title="Product A", variant_label="Red", unit_price=1200),
    ("B", None): PricingSnapshot(title="Product B", unit_price=500),
    ("C", None): PricingSnapshot(title="Product C", unit_price=200),
}


class LocalLockService:
    """Lock w pamieci procesu z tym samym interfejsem co LockService."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = defaultdict(threading.Lock)
        self.acquired = []

    @contextmanager
    def hold(self, *cart_ids):
        ordered = sorted(set(cart_ids))
        with self._guard:
            locks = [self._locks[cart_id] for cart_id in ordered]
        for lock in locks:
            lock.acquire()
        self.acquired.append(tuple(ordered))
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


@pytest.fixture
def engine():
    """In-memory SQLite DB for fast testing."""
    _engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(_engine)
    yield _engine
    Base.metadata.drop_all(_engine)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def catalog():
    return dict(CATALOG)


@pytest.fixture
def product_client(catalog):
    def _resolve(product_id, variant_id=None):
        try:
            return catalog[(product_id, variant_id)]
        except KeyError:
            raise NotFoundError(f"Produkt {product_id} nie istnieje")

    client = MagicMock()
    client.resolve_snapshot.side_effect = _resolve
    return client


@pytest.fixture
def lock_service():
    return LocalLockService()


@pytest.fixture
def cart_service(db_session, product_client, lock_service):
    return CartService(db_session, product_client, lock_service)


@pytest.fixture
def merge_service(db_session, lock_service):
    return MergeService(db_session, lock_service)


@pytest.fixture
def make_discount(db_session):
    def _make(code="SAVE10", type="PERCENTAGE", value=10, **kwargs):
        discount = DiscountCodeModel(code=code, type=type, value=value, **kwargs)
        db_session.add(discount)
        db_session.commit()
        return discount

    return _make


@pytest.fixture
def new_cart(cart_service):
    def _new(session_id="sess-1", user_id=None):
        return cart_service.get_or_create_cart(session_id=session_id, user_id=user_id)

    return _new


def assert_totals_consistent(cart):
    assert cart.subtotal == sum(i.price * i.quantity for i in cart.items)
    assert cart.total == max(0, cart.subtotal - cart.discount_total) + cart.tax_total + cart.shipping_total
    assert cart.total >= 0


def row_count(db_session, model=CartModel):
    return db_session.query(model).count()
