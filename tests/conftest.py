# tests/conftest.py
import os
import pytest
from sqlalchemy import delete
from app import create_app
from models.base import Base, init_engine_and_session, dispose_engine
from models.currency_store import seed_default_currencies
from models.schema import Currency
from services.klarna.client import SessionClient
from services.klarna.config import KlarnaConfig
from services.klarna.gateway import KlarnaCheckoutGateway
from services.klarna.registry import EXTENSION_KEY, GatewayRegistry
from tests.utils import FakeKlarna

KLARNA_ENV = {
    "KLARNA_USERNAME": "PK_test_merchant",
    "KLARNA_PASSWORD": "shared-secret",
    "KLARNA_MODE": "test",
    "KLARNA_PURCHASE_COUNTRY": "SE",
    "KLARNA_LOCALE": "sv-se",
    "KLARNA_TERMS_PATH": "/terms",
    "KLARNA_CAPTURE": "0",
    "KLARNA_UPDATE_BILLING_PROFILE": "1",
    "SITE_BASE_URL": "https://shop.example.com",
    "STORE_NAME": "Example Shop",
}


@pytest.fixture(scope="session", autouse=True)
def _set_env(tmp_path_factory):
    db_file = tmp_path_factory.mktemp("db") / "checkout.sqlite"
    # never point the suite at a real database
    os.environ["DATABASE_URL"] = f"sqlite:///{db_file}"
    os.environ.setdefault("APP_ENV", "test")
    os.environ.setdefault("METRICS_ENABLED", "1")
    os.environ.setdefault("AUTO_CREATE_SCHEMA", "1")
    os.environ.setdefault("LOG_TO_STDOUT", "1")
    for k, v in KLARNA_ENV.items():
        os.environ[k] = v
    dispose_engine()
    yield
    dispose_engine()


@pytest.fixture(scope="session")
def app(_set_env):
    return create_app({"TESTING": True})


@pytest.fixture(scope="session")
def db_engine(app):
    engine, _Session = init_engine_and_session()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    seed_default_currencies()
    return engine


@pytest.fixture(autouse=True)
def _db_clean(db_engine):
    # currencies are reference data; everything else starts empty
    with db_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            if table.name == Currency.__tablename__:
                continue
            conn.execute(delete(table))
    yield


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def klarna():
    return FakeKlarna()


@pytest.fixture()
def klarna_config():
    return KlarnaConfig(
        username=KLARNA_ENV["KLARNA_USERNAME"],
        password=KLARNA_ENV["KLARNA_PASSWORD"],
        site_base_url=KLARNA_ENV["SITE_BASE_URL"],
        store_name=KLARNA_ENV["STORE_NAME"],
    )


@pytest.fixture()
def make_gateway(klarna, klarna_config):
    """Build a gateway talking to the in-memory Klarna; kwargs override config fields."""
    from dataclasses import replace

    def _make(hooks=None, **overrides):
        cfg = replace(klarna_config, **overrides) if overrides else klarna_config
        return KlarnaCheckoutGateway(cfg, client=SessionClient(cfg, http=klarna), hooks=hooks)

    return _make


@pytest.fixture()
def gateway(make_gateway):
    return make_gateway()


@pytest.fixture()
def app_klarna(app, klarna):
    """Route every gateway the app builds to the in-memory Klarna."""
    previous = app.extensions.get(EXTENSION_KEY)
    app.extensions[EXTENSION_KEY] = GatewayRegistry(
        factory=lambda cfg: KlarnaCheckoutGateway(cfg, client=SessionClient(cfg, http=klarna)))
    yield klarna
    app.extensions[EXTENSION_KEY] = previous
