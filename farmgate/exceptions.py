"""Exception hierarchy for farmgate."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from farmgate.authz.decision import Deny


class FarmgateError(Exception):
    """Base exception for all farmgate errors."""


class ConfigError(FarmgateError):
    """Raised when configuration is invalid."""


class StorageError(FarmgateError):
    """Raised when storage operations fail."""


class LookupUnavailableError(StorageError):
    """Raised when an organization or entitlement lookup cannot be answered."""


class AuthorizationDenied(FarmgateError):
    """Raised at the transport boundary when the pipeline returns a denial."""

    def __init__(self, deny: Deny) -> None:
        super().__init__(deny.message)
        self.deny = deny
