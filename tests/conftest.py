from decimal import Decimal

import mongomock
import pytest
from fastapi.testclient import TestClient

import config
import database
from main import app
from schemas import CategoryCreate, ProductCreate
from storage import Storage

ADMIN_EMAIL = "admin@example.com"
PASSWORD = "correct-horse"


@pytest.fixture
def db():
    test_db = mongomock.MongoClient()["rental_test"]
    database.ensure_indexes(test_db)
    return test_db


@pytest.fixture
def storage(db):
    return Storage(db)


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_EMAILS", {ADMIN_EMAIL})
    app.dependency_overrides[database.get_db] = lambda: db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def signup(client, email, password=PASSWORD, **profile):
    resp = client.post("/auth/signup", json={"email": email, "password": password, **profile})
    assert resp.status_code == 200, resp.text
    return resp.json()


@pytest.fixture
def user_session(client):
    return signup(client, "shopper@example.com", firstName="Asha")


@pytest.fixture
def user_headers(user_session):
    return {"Authorization": f"Bearer {user_session['token']}"}


@pytest.fixture
def admin_headers(client):
    session = signup(client, ADMIN_EMAIL)
    return {"Authorization": f"Bearer {session['token']}"}


@pytest.fixture
def make_category(storage):
    def _make(slug, **fields):
        return storage.create_category(CategoryCreate(name=fields.pop("name", slug.title()), slug=slug, **fields))
    return _make


@pytest.fixture
def make_product(storage):
    def _make(slug, **fields):
        fields.setdefault("name", slug.replace("-", " ").title())
        fields.setdefault("base_price", Decimal("1000.00"))
        fields.setdefault("deposit_amount", Decimal("500.00"))
        return storage.create_product(ProductCreate(slug=slug, **fields))
    return _make
