# services/klarna/address.py
"""
Profile <-> Klarna address mapping.

Only the nine address attributes below are read or written; anything else
a host wants copied (care-of lines, phone numbers, ...) goes through
CheckoutHooks.alter_billing_profile.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Protocol


class AddressFields(Protocol):
    organization: Optional[str]
    given_name: Optional[str]
    family_name: Optional[str]
    country_code: Optional[str]
    postal_code: Optional[str]
    locality: Optional[str]
    administrative_area: Optional[str]
    address_line1: Optional[str]
    address_line2: Optional[str]


# Klarna key -> profile attribute
PROVIDER_TO_PROFILE: Dict[str, str] = {
    "organization_name": "organization",
    "given_name": "given_name",
    "family_name": "family_name",
    "country": "country_code",
    "postal_code": "postal_code",
    "city": "locality",
    "region": "administrative_area",
    "street_address": "address_line1",
    "street_address2": "address_line2",
}


def to_provider_address(profile: AddressFields) -> Dict[str, Any]:
    # email is never emitted here; the request builder appends the order's
    return {key: getattr(profile, attr, None)
            for key, attr in PROVIDER_TO_PROFILE.items()}


def from_provider_address(address: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key, value in (address or {}).items():
        attr = PROVIDER_TO_PROFILE.get(key)
        if attr is None:
            continue  # unknown keys are fine, Klarna adds fields over time
        if key == "country" and isinstance(value, str):
            value = value.upper()
        fields[attr] = value
    return fields


def populate_profile(profile: AddressFields, address: Optional[Dict[str, Any]]) -> AddressFields:
    for attr, value in from_provider_address(address).items():
        setattr(profile, attr, value)
    return profile
