"""
Shared pytest fixtures.

Provides:
    - engine: in-memory SQLite engine with all tables (function-scoped)
    - db: Session bound to that engine
    - client: FastAPI TestClient whose get_db yields sessions on the same engine
    - make_service / make_order / make_staff: row factories
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["EVENT_LOG_SECRET"] = "test-event-secret"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base, get_db
from app.main import app
from app.models.models import Garment, GarmentService, Order, Service, Staff

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_service(db):
    def _make(name="Hem pants", estimated_minutes=30, code=None, category="hemming"):
        service = Service(code=code, name=name, category=category, estimated_minutes=estimated_minutes)
        db.add(service)
        db.commit()
        return service

    return _make


@pytest.fixture()
def make_staff(db):
    def _make(code, role="staff"):
        staff = Staff(code=code, name=code.title(), role=role, is_active=True)
        db.add(staff)
        db.commit()
        return staff

    return _make


_order_numbers = iter(range(1000, 99999))


@pytest.fixture()
def make_order(db):
    """
    Create an order. ``garments`` is a list of service-line lists, one per
    garment, each line a (service, quantity) pair.
    """

    def _make(garments=None, status="pending", client_name="Jane Client"):
        order = Order(order_number=next(_order_numbers), client_name=client_name, status=status)
        for idx, lines in enumerate(garments if garments is not None else [[]]):
            garment = Garment(
                type="pants",
                label_code=f"G-{idx + 1}",
                stage="pending",
                is_active=False,
                actual_minutes=0,
                created_at=T0 + timedelta(seconds=idx),
            )
            for service, quantity in lines:
                garment.services.append(GarmentService(service_id=service.id, quantity=quantity))
            order.garments.append(garment)
        db.add(order)
        db.commit()
        return order

    return _make
