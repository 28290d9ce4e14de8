# services/klarna/hooks.py
"""
Extension points, called synchronously at fixed places:

  before_session_request_send  end of the session request builder; return
                               the (possibly altered) request
  validate_completed_session   before a completed session is acknowledged;
                               raise PaymentGatewayError to reject it
  alter_billing_profile        after the Klarna billing address is copied
                               onto the profile, before it is saved

Subclass CheckoutHooks and override what you need.
"""

from __future__ import annotations
from typing import Any, Dict


class CheckoutHooks:
    def before_session_request_send(self, request: Dict[str, Any], order) -> Dict[str, Any]:
        return request

    def validate_completed_session(self, order, remote_session) -> None:
        return None

    def alter_billing_profile(self, profile, remote_session) -> None:
        return None
