import os
import tempfile

os.environ["JWT_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "animalmart_test"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="animalmart-uploads-")

import mongomock
import pytest
from fastapi.testclient import TestClient

with mongomock.patch(servers=(("localhost", 27017),)):
    import auth
    import database
    import main


@pytest.fixture(autouse=True)
def clean_db():
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)
    database.ensure_indexes()
    auth.rate_store.clear()
    yield


@pytest.fixture
def client():
    with TestClient(main.app) as c:
        yield c


def _account(name, email, role):
    user = auth.create_user(name, email, "secret123", role=role)
    return {
        "user": auth.public_user(user),
        "headers": {"Authorization": f"Bearer {auth.issue_token(user)}"},
    }


@pytest.fixture
def admin():
    return _account("Admin", "admin@animalmart.id", "admin")


@pytest.fixture
def customer():
    return _account("Rina", "rina@animalmart.id", "customer")


@pytest.fixture
def other_customer():
    return _account("Budi", "budi@animalmart.id", "customer")


@pytest.fixture
def make_product(client, admin):
    def _make(**overrides):
        body = {"name": "Kibble Deluxe", "category": "Dog Food", "price": 10000, "stock": 10}
        body.update(overrides)
        res = client.post("/api/products", json=body, headers=admin["headers"])
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


def order_body(*items):
    return {
        "items": [
            {"product_id": p["_id"], "name": p["name"], "price": p["price"], "quantity": qty}
            for p, qty in items
        ],
        "customer_info": {
            "name": "Rina",
            "email": "rina@animalmart.id",
            "phone": "+62 812 3456 7890",
            "address": {
                "street": "Jl. Merdeka No. 10",
                "city": "Bandung",
                "province": "Jawa Barat",
                "postal_code": "40115",
            },
        },
        "payment_method": "bank_transfer",
    }


@pytest.fixture
def place_order(client, customer):
    def _place(*items, account=None):
        account = account or customer
        res = client.post("/api/orders", json=order_body(*items), headers=account["headers"])
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _place


def advance(client, admin, order_id, *statuses):
    for status in statuses:
        res = client.put(f"/api/orders/{order_id}/status", json={"status": status}, headers=admin["headers"])
        assert res.status_code == 200, res.text
    return res.json()["data"]
