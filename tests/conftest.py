import os

# Pas de Redis en tests: le lifespan désactive le rate limiting
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from typing import Generator, Dict, Any
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from payflow.app import app as fastapi_app
from payflow.utils.security import require_user
from payflow.payments.stripe_client import get_payment_provider
from tests.fakes import FakeCourses, FakeLedger, FakeOrders, FakeProvider

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    fake_user: Dict[str, Any] = {
        "id": "test-user",
        "email": "test@example.com",
        "metadata": {"full_name": "Test User"},
        "token": "fake-token",
    }
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

# Aucun accès Supabase réel: les clients renvoient des MagicMock
@pytest.fixture(autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("payflow.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("payflow.infra.supabase_client.get_service_supabase", lambda: MagicMock())

@pytest.fixture()
def ledger(monkeypatch) -> FakeLedger:
    return FakeLedger().install(monkeypatch)

@pytest.fixture()
def courses(monkeypatch) -> FakeCourses:
    return FakeCourses().install(monkeypatch)

@pytest.fixture()
def orders(monkeypatch) -> FakeOrders:
    return FakeOrders().install(monkeypatch)

@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()

@pytest.fixture()
def provider_override(app, provider):
    app.dependency_overrides[get_payment_provider] = lambda: provider
    try:
        yield provider
    finally:
        app.dependency_overrides.pop(get_payment_provider, None)
