import mongomock
import pytest
from fastapi.testclient import TestClient

import catalog
import database
import main
from auth import create_token
from database import utcnow
from notifications import get_notifier


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send_order_confirmation(self, order):
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append(order)
        return True


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    mock_db = client["fanstore_test"]
    database.ensure_indexes(mock_db)
    return mock_db


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(db, notifier):
    main.app.dependency_overrides[database.get_db] = lambda: db
    main.app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(name=None, price=100.0, stock=10, category="Ceiling Fans", **extra):
        counter["n"] += 1
        payload = {
            "name": name or f"Fan {counter['n']}",
            "price": price,
            "stock": stock,
            "category": category,
            **extra,
        }
        return catalog.create_product(db, payload)

    return _make


@pytest.fixture
def make_user(db):
    def _make(name="Ayesha", is_admin=False, email=None):
        doc = {
            "name": name,
            "hashed_password": "",
            "is_active": True,
            "is_admin": is_admin,
            "created_at": utcnow(),
            "updated_at": utcnow(),
        }
        if email:
            doc["email"] = email
        doc["_id"] = db["user"].insert_one(doc).inserted_id
        return doc

    return _make


@pytest.fixture
def admin_headers(make_user):
    admin = make_user(name="Admin", is_admin=True, email="admin@fanstore.pk")
    return {"Authorization": f"Bearer {create_token(admin)}"}
