"""Shared fixtures: a throwaway SQLite database per test and an in-memory mailer."""

import os
import sys

# Configure before the app modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("APP_URL", "https://water.example.com")
os.environ.setdefault("RESEND_API_KEY", "")

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from watermarket.database import Base, build_engine, get_db
from watermarket.main import app
from watermarket.middleware.auth import create_access_token, hash_password
from watermarket.middleware.rate_limit import limiter
from watermarket.models.user import User
from watermarket.services import listing_service, trade_service
from watermarket.services.mailer import MailDeliveryError
from watermarket.services.notifications import Notifier, get_notifier

limiter.enabled = False


class RecordingMailer:
    """Captures messages instead of sending them."""

    def __init__(self):
        self.sent = []

    def send(self, to, subject, html, idempotency_key=None):
        self.sent.append({
            "to": to,
            "subject": subject,
            "html": html,
            "idempotency_key": idempotency_key,
        })
        return f"msg-{len(self.sent)}"


class FailingMailer:
    """A provider that is always down."""

    def __init__(self):
        self.attempts = 0

    def send(self, to, subject, html, idempotency_key=None):
        self.attempts += 1
        raise MailDeliveryError("Mail provider unreachable: connection refused")


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'market.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def client(session_factory, mailer):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: Notifier(session_factory, mailer)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_user(db, email, display_name, role="member", password="correct-horse"):
    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        display_name=display_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    token = create_access_token({"sub": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seller(db):
    return make_user(db, "sam@ranch.example", "Sam Seller")


@pytest.fixture
def buyer(db):
    return make_user(db, "bea@farms.example", "Bea Buyer")


@pytest.fixture
def outsider(db):
    return make_user(db, "olly@elsewhere.example", "Olly Outsider")


@pytest.fixture
def admin(db):
    return make_user(db, "ada@water.example", "Ada Admin", role="admin")


@pytest.fixture
def listing(db, seller):
    return listing_service.create_listing(
        db,
        seller.id,
        title="Westlands surface water, spring delivery",
        description="Pumped from the district canal.",
        district="Westlands",
        water_type="Surface",
        volume_af=100,
        price_per_af=55000,
        kind="SELL",
    )


@pytest.fixture
def auction(db, seller):
    return listing_service.create_listing(
        db,
        seller.id,
        title="Groundwater auction",
        district="Kern",
        water_type="Groundwater",
        volume_af=40,
        price_per_af=30000,
        kind="AUCTION",
    )


@pytest.fixture
def trade(db, listing, buyer):
    """Buyer's opening offer: 100 AF at $550.00/AF."""
    return trade_service.create_trade(
        db,
        buyer_user_id=buyer.id,
        listing_id=listing.id,
        district="Westlands",
        water_type="Surface",
        volume_af=100,
        price_per_af=55000,
        window_label="Apr-Jun 2026",
    )
