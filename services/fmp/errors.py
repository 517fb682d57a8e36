# services/fmp/errors.py
from __future__ import annotations

from typing import Optional


class FmpServiceError(Exception):
    """Domain-level error for the FMP data layer."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        status: Optional[int] = None,
        symbol: Optional[str] = None,
        resource: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        self.status = status
        self.symbol = symbol
        self.resource = resource

    def with_context(
        self,
        prefix: str,
        *,
        symbol: Optional[str] = None,
        resource: Optional[str] = None,
    ) -> "FmpServiceError":
        """Same error class and attributes, message prefixed with `prefix`."""
        return type(self)(
            f"{prefix}: {self.message}",
            path=self.path,
            status=self.status,
            symbol=symbol or self.symbol,
            resource=resource or self.resource,
        )


class FmpConfigError(FmpServiceError):
    """Missing or invalid configuration (e.g. no FMP_API_KEY). Never retried."""


class FmpUpstreamError(FmpServiceError):
    """Terminal upstream failure: non-retryable status or unparseable body."""


class FmpTransientError(FmpServiceError):
    """Transient upstream failure (429 / 5xx / transport). Raised once retries are exhausted."""


class FmpNoDataError(FmpServiceError):
    """Upstream returned nothing for a resource where an empty result is not valid."""
