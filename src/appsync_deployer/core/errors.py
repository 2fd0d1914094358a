"""
Error taxonomy for appsync-deployer.

- ConfigurationError: bad desired input, raised before any remote call.
- ProviderError: anything the AWS client reported (not retried here).
- NotFoundError: provider said the resource is absent (tolerated on deletes
  and optional lookups only).
- SchemaCreationFailed / SchemaTimeout: terminal outcomes of the schema loop.
"""

from __future__ import annotations

from typing import Any, Iterable


class AppSyncDeployerError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AppSyncDeployerError):
    """Raised when the desired configuration is invalid."""


class ProviderError(AppSyncDeployerError):
    """Error reported by the remote provider, with operation context."""

    def __init__(self, operation: str, code: str = "", message: str = "") -> None:
        self.operation = operation
        self.code = code
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        base = f"{type(self).__name__}(operation={self.operation}"
        if self.code:
            base += f", code={self.code}"
        base += ")"
        if self.message:
            base += f": {self.message}"
        return base


class NotFoundError(ProviderError):
    """The provider reported the resource as absent."""


class SchemaCreationFailed(ProviderError):
    """Schema creation reached the FAILED terminal status."""


class SchemaTimeout(AppSyncDeployerError):
    """Schema creation did not reach a terminal status in time."""


def check_for_required(keys: Iterable[str], item: Any, kind: str) -> None:
    """Raise ConfigurationError if ``item`` lacks any of ``keys``."""
    if not isinstance(item, dict):
        raise ConfigurationError(f"{kind} must be a mapping, got {type(item).__name__}")
    missing = [k for k in keys if item.get(k) in (None, "")]
    if missing:
        raise ConfigurationError(f"{kind} is missing required field(s): {', '.join(missing)}")

