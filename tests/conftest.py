import os
import tempfile

os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="valora-uploads-"))
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("DEFAULT_ADMIN_PASSWORD", None)

import mongomock
import pytest

import database

# every module binds `db` at import, so swap it before the app is loaded
database.db = mongomock.MongoClient()["valora_test"]

from fastapi.testclient import TestClient  # noqa: E402

import main  # noqa: E402
from catalog import normalize_product, unique_slug  # noqa: E402
from database import create_document, db, to_object_id  # noqa: E402
from schemas import Product, User  # noqa: E402
from security import get_password_hash, token_for  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def clean_db():
    for name in db.list_collection_names():
        db.drop_collection(name)
    yield


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def make_user():
    def _make(email="amna@valoragold.com", role="user", name="Amna Khan", **extra):
        user = User(name=name, email=email, password_hash=get_password_hash(PASSWORD), role=role, **extra)
        user_id = create_document("user", user)
        return db["user"].find_one({"_id": to_object_id(user_id)})
    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@valoragold.com", role="admin", name="Store Admin")


@pytest.fixture
def user_headers(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {token_for(admin)}"}


@pytest.fixture
def make_product():
    def _make(name="Gold Chain", **fields):
        data = {
            "name": name,
            "price": 1000,
            "category": "Chains",
            "description": "22K gold chain",
            "stock_count": 10,
            **fields,
        }
        data["slug"] = unique_slug(name)
        product_id = create_document("product", Product(**normalize_product(data)))
        return db["product"].find_one({"_id": to_object_id(product_id)})
    return _make


@pytest.fixture
def shipping_address():
    return {
        "street": "12 Mall Road",
        "city": "Lahore",
        "province": "Punjab",
        "postal_code": "54000",
        "phone": "+923001234567",
    }
