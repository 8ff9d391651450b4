import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from auth import get_password_hash
from database import DataService
from schemas import Credentials
from sessions import SessionRegistry, StoreSession

PASSWORD = "secret-pass"


@pytest.fixture
def password():
    return PASSWORD


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(PASSWORD)


@pytest.fixture
def data():
    service = DataService(mongomock.MongoClient()["storefront_test"])
    service.ensure_indexes()
    return service


@pytest.fixture
def products(data):
    lamp = data.insert("products", {
        "name": "Desk Lamp", "slug": "desk-lamp", "description": "Warm light",
        "price": 10.0, "stock": 5, "image_url": "https://img.example/lamp.png",
        "is_featured": True, "is_active": True,
    })
    notebook = data.insert("products", {
        "name": "Notebook", "slug": "notebook", "description": "Dotted pages",
        "price": 5.0, "stock": 10, "image_url": "https://img.example/notebook.png",
        "is_featured": False, "is_active": True,
    })
    mug = data.insert("products", {
        "name": "Scarce Mug", "slug": "scarce-mug", "price": 12.5, "stock": 3,
        "is_featured": True, "is_active": True,
    })
    sold_out = data.insert("products", {
        "name": "Sold Out Vase", "slug": "sold-out-vase", "price": 80.0, "stock": 0,
        "is_featured": False, "is_active": True,
    })
    return {"lamp": lamp, "notebook": notebook, "mug": mug, "sold_out": sold_out}


@pytest.fixture
def customer(data, password_hash):
    return data.insert("profiles", {
        "email": "ana@example.com",
        "full_name": "Ana Buyer",
        "role": "customer",
        "password_hash": password_hash,
        "phone": "555-0100",
        "address": "1 Main St",
        "city": "Springfield",
        "postal_code": "12345",
        "country": "US",
    })


@pytest.fixture
def admin_user(data, password_hash):
    return data.insert("profiles", {
        "email": "boss@example.com",
        "full_name": "Store Boss",
        "role": "admin",
        "password_hash": password_hash,
    })


@pytest.fixture
def store(data, customer):
    session = StoreSession(data)
    session.auth.sign_in(Credentials(email=customer["email"], password=PASSWORD))
    return session


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def client(data, registry):
    main.app.dependency_overrides[main.get_data] = lambda: data
    main.app.dependency_overrides[main.get_registry] = lambda: registry
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides = {}


@pytest.fixture
def login(client):
    def _login(email, password=PASSWORD):
        response = client.post("/auth/token", data={"username": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login
