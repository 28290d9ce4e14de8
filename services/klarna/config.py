# services/klarna/config.py
"""
Gateway configuration (env first, Flask config second):

  KLARNA_USERNAME / KLARNA_PASSWORD     API credentials (required)
  KLARNA_MODE                           "test" | "live" (default test)
  KLARNA_PURCHASE_COUNTRY               e.g. SE, US (default SE)
  KLARNA_LOCALE                         e.g. sv-se (default sv-se)
  KLARNA_TERMS_PATH                     path of the terms page (default /terms)
  KLARNA_CAPTURE                        "1" = capture right after acknowledge
  KLARNA_UPDATE_BILLING_PROFILE         "1" = copy Klarna billing address back (default 1)
  KLARNA_ALLOWED_CUSTOMER_TYPES         comma list, e.g. "person,organization"
  KLARNA_ALLOW_SEPARATE_SHIPPING_ADDRESS
  KLARNA_TIMEOUT                        seconds per outbound call (default 15)
  KLARNA_API_URL                        overrides the endpoint derived below
  SITE_BASE_URL                         absolute base for the terms URL
  STORE_NAME                            used when an order has no store
"""

from __future__ import annotations
import hashlib
import json
import os
from dataclasses import asdict, dataclass, field
from typing import Tuple

from flask import current_app, has_app_context

from services.klarna.errors import ConfigurationError

# See https://docs.klarna.com/api/api-urls/
EU_BASE_URL = "https://api.klarna.com"
EU_TEST_BASE_URL = "https://api.playground.klarna.com"
NA_BASE_URL = "https://api-na.klarna.com"
NA_TEST_BASE_URL = "https://api-na.playground.klarna.com"

GATEWAY_ID = "klarna_checkout"


def _cfg(key: str, default: str | None = None) -> str | None:
    v = os.environ.get(key)
    if v is not None:
        return v
    if has_app_context():
        v = current_app.config.get(key)
        if v is not None:
            return str(v)
    return default


def _bool(v: str | None, default: bool = False) -> bool:
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class KlarnaConfig:
    username: str
    password: str
    mode: str = "test"
    purchase_country: str = "SE"
    locale: str = "sv-se"
    terms_path: str = "/terms"
    capture: bool = False
    update_billing_profile: bool = True
    allowed_customer_types: Tuple[str, ...] = field(default_factory=tuple)
    allow_separate_shipping_address: bool = False
    timeout: float = 15.0
    api_url: str | None = None
    site_base_url: str = ""
    store_name: str = "Store"

    def __post_init__(self):
        if not self.username or not self.password:
            raise ConfigurationError(
                "KLARNA_USERNAME and KLARNA_PASSWORD must be set")
        if self.mode not in ("test", "live"):
            raise ConfigurationError(
                f"KLARNA_MODE must be 'test' or 'live', got {self.mode!r}")
        if self.timeout <= 0:
            raise ConfigurationError("KLARNA_TIMEOUT must be positive")

    @property
    def is_test(self) -> bool:
        return self.mode == "test"

    @property
    def base_url(self) -> str:
        if self.api_url:
            return self.api_url.rstrip("/")
        if self.purchase_country.upper() == "US":
            return NA_TEST_BASE_URL if self.is_test else NA_BASE_URL
        return EU_TEST_BASE_URL if self.is_test else EU_BASE_URL

    def terms_url(self, base_url: str | None = None) -> str:
        site = (base_url or self.site_base_url or "").rstrip("/")
        path = self.terms_path or "/"
        if path.startswith(("http://", "https://")):
            return path
        return f"{site}/{path.lstrip('/')}"

    def cache_key(self) -> str:
        """Stable hash of everything that affects how a client behaves."""
        body = json.dumps(asdict(self), sort_keys=True, default=list)
        return hashlib.sha256(body.encode("utf-8")).hexdigest()

    @classmethod
    def from_env(cls) -> "KlarnaConfig":
        types = [t.strip() for t in (_cfg("KLARNA_ALLOWED_CUSTOMER_TYPES") or "").split(",")
                 if t.strip()]
        try:
            timeout = float(_cfg("KLARNA_TIMEOUT", "15"))
        except ValueError:
            raise ConfigurationError("KLARNA_TIMEOUT must be a number")
        return cls(
            username=_cfg("KLARNA_USERNAME") or "",
            password=_cfg("KLARNA_PASSWORD") or "",
            mode=(_cfg("KLARNA_MODE") or "test").lower(),
            purchase_country=(_cfg("KLARNA_PURCHASE_COUNTRY") or "SE").upper(),
            locale=_cfg("KLARNA_LOCALE") or "sv-se",
            terms_path=_cfg("KLARNA_TERMS_PATH") or "/terms",
            capture=_bool(_cfg("KLARNA_CAPTURE"), False),
            update_billing_profile=_bool(
                _cfg("KLARNA_UPDATE_BILLING_PROFILE"), True),
            allowed_customer_types=tuple(types),
            allow_separate_shipping_address=_bool(
                _cfg("KLARNA_ALLOW_SEPARATE_SHIPPING_ADDRESS"), False),
            timeout=timeout,
            api_url=_cfg("KLARNA_API_URL") or None,
            site_base_url=(_cfg("SITE_BASE_URL") or "").rstrip("/"),
            store_name=_cfg("STORE_NAME") or "Store",
        )
