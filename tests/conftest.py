"""
Pytest configuration and fixtures for Affiliate Core tests.

Every test runs inside one outer transaction on an in-memory SQLite database
that is rolled back afterwards. Services commit and roll back freely; the
session joins the outer transaction through SAVEPOINTs so those calls only
ever touch the test's own nested transaction.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "test")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from affiliate_core import models  # noqa: F401
from affiliate_core.core.security import create_access_token
from affiliate_core.db import Base
from affiliate_core.models import Campaign, Click, Conversion, Link, Partner, Product

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,  # Set to True for SQL debugging
)


# pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN itself
@event.listens_for(test_engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create the schema once per test session."""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def db():
    """
    Provide a clean database session for each test.

    Usage:
        def test_something(db: Session):
            partner = Partner(...)
            db.add(partner)
            db.commit()  # releases a SAVEPOINT, the outer transaction is rolled back later
    """
    connection = test_engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    from affiliate_core.utils.rate_limit import get_rate_limiter
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


def override_get_db(db_session):
    def _override():
        yield db_session
    return _override


@pytest.fixture(scope="function")
def client(setup_test_db, db):
    """FastAPI TestClient bound to the test session."""
    from fastapi.testclient import TestClient
    from affiliate_core.db import get_db
    from affiliate_core.main import app

    app.dependency_overrides[get_db] = override_get_db(db)
    try:
        # Set raise_server_exceptions=False so errors are converted to responses
        with TestClient(app, raise_server_exceptions=False) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    token = create_access_token("admin-user", "admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_partner(db):
    """Factory for partners. Defaults: 10% commission, 30 day window, with API secret."""
    counter = {"n": 0}

    def _make(**kwargs) -> Partner:
        counter["n"] += 1
        fields = {
            "company_name": f"Partner {counter['n']}",
            "slug": f"partner-{counter['n']}",
            "commission_rate": 10.0,
            "commission_type": "percentage",
            "cookie_window_days": 30,
            "status": "active",
            "payout_threshold_cents": 5000,
            "payout_method": "manual",
            "api_secret": "s3cret-key",
        }
        fields.update(kwargs)
        partner = Partner(**fields)
        db.add(partner)
        db.commit()
        db.refresh(partner)
        return partner

    return _make


@pytest.fixture
def partner(make_partner):
    return make_partner(company_name="Acme Labs", slug="acme-labs")


@pytest.fixture
def product(db, partner):
    product = Product(
        partner_id=partner.id,
        name="Sequencer Kit",
        slug="acme-sequencer-kit",
        product_url="https://acme.example.com/kit",
        price_cents=14999,
        status="active",
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def link(db, partner, product):
    from affiliate_core.services.link_registry import create_link
    link, _ = create_link(db, partner.id, product_id=product.id, code_factory=lambda: "abc12345")
    return link


@pytest.fixture
def make_click(db):
    def _make(link: Link, clicked_at=None, is_bot=False, ip_address="203.0.113.0", session_id=None) -> Click:
        click = Click(
            link_id=link.id,
            partner_id=link.partner_id,
            product_id=link.product_id,
            campaign_id=link.campaign_id,
            clicked_at=clicked_at or datetime.utcnow(),
            ip_address=ip_address,
            user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
            device_type="desktop",
            is_bot=is_bot,
            session_id=session_id,
        )
        db.add(click)
        db.commit()
        db.refresh(click)
        return click

    return _make


@pytest.fixture
def make_conversion(db):
    counter = {"n": 0}

    def _make(partner: Partner, commission_cents=1500, status="approved", currency="USD", **kwargs) -> Conversion:
        counter["n"] += 1
        conversion = Conversion(
            partner_id=partner.id,
            order_id=kwargs.pop("order_id", f"ORD-{counter['n']}"),
            sale_amount_cents=kwargs.pop("sale_amount_cents", commission_cents * 10),
            commission_cents=commission_cents,
            currency=currency,
            conversion_status=status,
            payout_status=kwargs.pop("payout_status", "unpaid"),
            converted_at=kwargs.pop("converted_at", datetime.utcnow() - timedelta(days=counter["n"])),
            **kwargs,
        )
        db.add(conversion)
        db.commit()
        db.refresh(conversion)
        return conversion

    return _make


@pytest.fixture
def make_campaign(db):
    def _make(**kwargs) -> Campaign:
        fields = {
            "name": "Spring Promo",
            "start_date": datetime.utcnow() - timedelta(days=1),
            "end_date": datetime.utcnow() + timedelta(days=30),
            "status": "active",
        }
        fields.update(kwargs)
        campaign = Campaign(**fields)
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return campaign

    return _make
