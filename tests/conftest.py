import os
import tempfile
from datetime import timedelta

# the app builds its engine at import time, so configure before importing it
_TMP = tempfile.mkdtemp(prefix="shopfest-tests-")
DB_PATH = os.path.join(_TMP, "test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{DB_PATH}"
os.environ["SESSION_SECRET"] = "test-secret"
os.environ["ADMIN_AUTH_MODE"] = "simple"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["ADMIN_PASSWORD"] = "s3cret"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from shopfest.helpers import today
from shopfest.model.db import Base, Customer, Event, Product
from shopfest.web import SessionAsync

sync_engine = create_engine(f"sqlite:///{DB_PATH}", poolclass=NullPool)


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(sync_engine)
    Base.metadata.create_all(sync_engine)
    yield


@pytest.fixture
def sync_db():
    with Session(sync_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
async def db():
    async with SessionAsync() as session:
        yield session


def build_event(event_id="EVT_SPRING", days_before=1, days_after=10,
                **kw) -> Event:
    d = today()
    fields = dict(
        id=event_id,
        name={"en": "Spring Sale", "vi": "Khuyến mãi mùa xuân"},
        description={"en": "Spring", "vi": "Mùa xuân"},
        type="simple_packages",
        start_date=d - timedelta(days=days_before),
        end_date=d + timedelta(days=days_after),
        status=True,
    )
    fields.update(kw)
    return Event(**fields)


def build_products():
    return [
        Product(id="PACK_3", name={"en": "Pack 3", "vi": "Gói 3"},
                description={"en": "Three units", "vi": "Ba sản phẩm"}),
        Product(id="PACK_5", name={"en": "Pack 5", "vi": "Gói 5"},
                description={"en": "Five units", "vi": "Năm sản phẩm"}),
        Product(id="TV_55", name={"en": "Smart TV 55", "vi": "Tivi 55 inch"},
                description={"en": "Television", "vi": "Tivi"}),
    ]


@pytest.fixture
def catalog_rows(sync_db):
    """An active event and three products."""
    event = build_event()
    sync_db.add(event)
    sync_db.add_all(build_products())
    sync_db.commit()
    return event


@pytest.fixture
def shop(sync_db, catalog_rows):
    c = Customer(id="CUST_A", phone="0901234567", shop_name="Shop A",
                 joined=today())
    sync_db.add(c)
    sync_db.commit()
    return c


@pytest.fixture
def client():
    from shopfest.server import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_client(client):
    r = client.post("/admin/login", data={
        "email": "admin@example.com", "password": "s3cret", "next": "/admin",
    }, follow_redirects=False)
    assert r.status_code == 303
    return client
