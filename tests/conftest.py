import pytest

from app import app, intent_cache

ENV_VARS = (
    "EXOTEL_SID",
    "EXOTEL_TOKEN",
    "FROM_NUMBER",
    "EXOTEL_SUBDOMAIN",
    "EXOTEL_TIMEOUT",
    "BASE_URL",
    "DEMO_FALLBACK",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    intent_cache.clear()
    yield


@pytest.fixture
def configured_env(monkeypatch):
    monkeypatch.setenv("EXOTEL_SID", "acme1")
    monkeypatch.setenv("EXOTEL_TOKEN", "secret-token")
    monkeypatch.setenv("FROM_NUMBER", "+14155551000")


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client
