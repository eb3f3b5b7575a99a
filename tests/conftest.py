import pytest
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

from sqlalchemy.pool import StaticPool

from app import create_app, database
from app.database import Base, build_engine, build_session_factory
from app.models import (
    Combo, ComboLineItem, DiscountKind, DiscountRule, DiscountScope,
    InventoryItem, InventoryKind, SelectionMode, TemporalType
)
from app.services.shift_service import open_shift
from config import Config

# Wednesday: weekday '3' with Sunday = 0
NOW = datetime(2026, 10, 14, 13, 0)


class TestConfig(Config):
    """In-memory SQLite; one shared connection so every session sees the same data."""
    TESTING = True
    ENV = 'testing'
    SENTRY_DSN = None
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {
        'poolclass': StaticPool,
        'connect_args': {'check_same_thread': False},
    }


@pytest.fixture
def now():
    return NOW


@pytest.fixture(scope='function')
def engine():
    """Fresh in-memory database per test."""
    engine = build_engine(
        'sqlite://',
        poolclass=StaticPool,
        connect_args={'check_same_thread': False}
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope='function')
def session(engine):
    """Create database session for testing."""
    session = build_session_factory(engine)()
    yield session
    session.rollback()
    session.close()


def _seed_catalog(session):
    """Two burgers, two drinks, fries, and two combos built from them."""
    burger = InventoryItem(name='Hamburguesa', kind=InventoryKind.PRODUCT, unit_price=Decimal('100.00'), stock_quantity=50)
    chicken = InventoryItem(name='Pollo', kind=InventoryKind.PRODUCT, unit_price=Decimal('120.00'), stock_quantity=50)
    cola = InventoryItem(name='Cola', kind=InventoryKind.DRINK, unit_price=Decimal('30.00'), stock_quantity=50)
    lemon = InventoryItem(name='Limonada', kind=InventoryKind.DRINK, unit_price=Decimal('35.00'), stock_quantity=50)
    fries = InventoryItem(name='Papas', kind=InventoryKind.SIDE, unit_price=Decimal('40.00'), stock_quantity=50)
    session.add_all([burger, chicken, cola, lemon, fries])
    session.flush()

    classic = Combo(name='Combo Clásico', base_price=Decimal('200.00'))
    classic.line_items = [
        ComboLineItem(product_id=burger.id, quantity=1, selection_mode=SelectionMode.FIXED),
        ComboLineItem(product_id=fries.id, quantity=1, selection_mode=SelectionMode.FIXED),
        ComboLineItem(product_id=cola.id, quantity=1, selection_mode=SelectionMode.CHOICE, choice_group='bebida'),
        ComboLineItem(product_id=lemon.id, quantity=1, selection_mode=SelectionMode.CHOICE, choice_group='bebida'),
    ]
    chicken_combo = Combo(name='Combo Pollo', base_price=Decimal('250.00'))
    chicken_combo.line_items = [
        ComboLineItem(product_id=chicken.id, quantity=1, selection_mode=SelectionMode.FIXED),
        ComboLineItem(product_id=fries.id, quantity=2, selection_mode=SelectionMode.FIXED),
    ]
    session.add_all([classic, chicken_combo])
    session.commit()

    return SimpleNamespace(
        burger=burger, chicken=chicken, cola=cola, lemon=lemon, fries=fries,
        classic=classic, chicken_combo=chicken_combo
    )


@pytest.fixture(scope='function')
def catalog(session):
    return _seed_catalog(session)


@pytest.fixture(scope='function')
def shift(session):
    """Open shift with 1000 of initial cash."""
    return open_shift(session, 'emp-1', 'Ana', Decimal('1000.00'), now=NOW)


@pytest.fixture
def make_rule(session):
    """Persist a discount rule active on NOW unless told otherwise."""
    def _make_rule(combos=(), **fields):
        fields.setdefault('name', 'Promo')
        fields.setdefault('kind', DiscountKind.SIMPLE)
        fields.setdefault('percentage', Decimal('10'))
        fields.setdefault('temporal_type', TemporalType.WEEKDAY)
        fields.setdefault('temporal_value', '3')
        fields.setdefault('applies_to', DiscountScope.COMBOS)
        rule = DiscountRule(**fields)
        session.add(rule)
        session.flush()
        for combo in combos:
            combo.discount_rules.append(rule)
        session.commit()
        return rule
    return _make_rule


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing."""
    app = create_app(TestConfig)
    Base.metadata.create_all(database.engine)
    yield app
    database.db_session.remove()
    database.engine.dispose()


@pytest.fixture(scope='function')
def app_session(app):
    """The app's scoped session (the one CLI commands use)."""
    return database.db_session


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """Create CLI runner."""
    return app.test_cli_runner()
