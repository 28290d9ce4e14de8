# services/klarna/errors.py
"""
Error taxonomy for the Klarna checkout integration.

  ConfigurationError   bad/missing currency metadata or credentials (fatal)
  InvalidArgument      caller bug, e.g. merchant URLs missing a required key
  RemoteError          non-2xx / transport failure talking to Klarna
  RemoteNotFound       stale session id (404); callers fall back to create
  PaymentGatewayError  user-visible checkout failure (status mismatch,
                       acknowledge failure, capture failure)
  InvalidState         capture attempted on a payment not in 'authorization'
"""

from __future__ import annotations
from typing import Any, Optional


class KlarnaError(Exception):
    """Base class for everything raised by services.klarna."""


class ConfigurationError(KlarnaError):
    pass


class InvalidArgument(KlarnaError, ValueError):
    pass


class RemoteError(KlarnaError):
    def __init__(self, message: str, *, status_code: Optional[int] = None,
                 error_code: Optional[str] = None, retryable: bool = False,
                 payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.retryable = retryable
        self.payload = payload


class RemoteNotFound(RemoteError):
    pass


class PaymentGatewayError(KlarnaError):
    pass


class InvalidState(KlarnaError):
    pass
