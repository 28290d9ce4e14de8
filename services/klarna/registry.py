# services/klarna/registry.py
from __future__ import annotations
import logging
import threading
from collections import OrderedDict
from typing import Callable, Optional

from flask import current_app

from services.klarna.config import KlarnaConfig, _cfg
from services.klarna.gateway import KlarnaCheckoutGateway

logger = logging.getLogger(__name__)

EXTENSION_KEY = "klarna_registry"


class GatewayRegistry:
    """
    One gateway (and one pooled HTTP client) per distinct configuration.

    Keyed by KlarnaConfig.cache_key(); the least recently used entry is
    closed and dropped once more than `max_size` configurations are live.
    """

    def __init__(self, max_size: int = 8,
                 factory: Callable[[KlarnaConfig], KlarnaCheckoutGateway] | None = None) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.factory = factory or KlarnaCheckoutGateway
        self._items: "OrderedDict[str, KlarnaCheckoutGateway]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, config: KlarnaConfig) -> bool:
        return config.cache_key() in self._items

    def get(self, config: KlarnaConfig) -> KlarnaCheckoutGateway:
        key = config.cache_key()
        with self._lock:
            gw = self._items.get(key)
            if gw is not None:
                self._items.move_to_end(key)
                return gw
            gw = self.factory(config)
            self._items[key] = gw
            while len(self._items) > self.max_size:
                _, old = self._items.popitem(last=False)
                self._close(old)
            return gw

    def evict(self, config: KlarnaConfig) -> bool:
        with self._lock:
            gw = self._items.pop(config.cache_key(), None)
        if gw is None:
            return False
        self._close(gw)
        return True

    def clear(self) -> None:
        with self._lock:
            items = list(self._items.values())
            self._items.clear()
        for gw in items:
            self._close(gw)

    @staticmethod
    def _close(gw: KlarnaCheckoutGateway) -> None:
        close = getattr(gw.client, "close", None)
        if close is None:
            return
        try:
            close()
        except Exception:
            logger.warning("Failed to close Klarna client", exc_info=True)


def make_registry() -> GatewayRegistry:
    return GatewayRegistry(max_size=int(_cfg("KLARNA_REGISTRY_MAX", "8")))


def get_gateway(config: Optional[KlarnaConfig] = None) -> KlarnaCheckoutGateway:
    """Gateway for `config` (default: the app's environment configuration)."""
    config = config or KlarnaConfig.from_env()
    registry = current_app.extensions.get(EXTENSION_KEY)
    if registry is None:
        registry = current_app.extensions[EXTENSION_KEY] = make_registry()
    return registry.get(config)
