from dataclasses import replace

import pytest

from services.klarna.client import SessionClient
from services.klarna.gateway import KlarnaCheckoutGateway
from services.klarna.registry import EXTENSION_KEY, GatewayRegistry, get_gateway, make_registry
from tests.utils import FakeKlarna


@pytest.fixture()
def registry():
    return GatewayRegistry(max_size=2, factory=lambda cfg: KlarnaCheckoutGateway(
        cfg, client=SessionClient(cfg, http=FakeKlarna())))


def test_same_config_reuses_gateway(registry, klarna_config):
    a = registry.get(klarna_config)
    b = registry.get(replace(klarna_config))
    assert a is b
    assert len(registry) == 1


def test_different_credentials_get_their_own_gateway(registry, klarna_config):
    a = registry.get(klarna_config)
    b = registry.get(replace(klarna_config, username="PK_other"))
    assert a is not b
    assert b.config.username == "PK_other"


def test_least_recently_used_is_evicted_and_closed(registry, klarna_config):
    c1 = klarna_config
    c2 = replace(klarna_config, username="u2")
    c3 = replace(klarna_config, username="u3")
    g1 = registry.get(c1)
    g2 = registry.get(c2)
    registry.get(c1)  # c2 is now the oldest
    registry.get(c3)
    assert c1 in registry and c3 in registry
    assert c2 not in registry
    assert g2.client.http.closed
    assert not g1.client.http.closed


def test_evict_and_clear(registry, klarna_config):
    g = registry.get(klarna_config)
    assert registry.evict(klarna_config) is True
    assert registry.evict(klarna_config) is False
    assert g.client.http.closed
    registry.get(klarna_config)
    registry.clear()
    assert len(registry) == 0


def test_max_size_must_be_positive():
    with pytest.raises(ValueError):
        GatewayRegistry(max_size=0)


def test_registry_size_from_env_then_app_config(app, monkeypatch):
    monkeypatch.delenv("KLARNA_REGISTRY_MAX", raising=False)
    monkeypatch.setitem(app.config, "KLARNA_REGISTRY_MAX", 3)
    with app.app_context():
        assert make_registry().max_size == 3
        monkeypatch.setenv("KLARNA_REGISTRY_MAX", "5")
        assert make_registry().max_size == 5


def test_app_owns_a_registry(app):
    assert isinstance(app.extensions[EXTENSION_KEY], GatewayRegistry)


def test_get_gateway_uses_app_registry(app, app_klarna):
    with app.app_context():
        g1 = get_gateway()
        g2 = get_gateway()
    assert g1 is g2
    assert g1.config.username == "PK_test_merchant"
    assert g1.client.http is app_klarna
