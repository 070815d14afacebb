"""Service result base type.

Services never let domain or provider errors escape to the API layer;
they return a result carrying either the payload or an error code.
"""

from dataclasses import dataclass, field
from typing import Any, Self

from sellerportal.domain.exceptions import DomainError
from sellerportal.infrastructure.shiprocket_client import ShippingProviderError


@dataclass(kw_only=True)
class ServiceResult:
    """Outcome fields shared by every service result."""

    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: DomainError, **fields: Any) -> Self:
        """Build a failed result from a domain error."""
        return cls(
            success=False,
            error=error.message,
            error_code=error.error_code,
            details=error.details,
            **fields,
        )

    @classmethod
    def provider_failure(cls, error: ShippingProviderError, **fields: Any) -> Self:
        """Build a failed result from a shipping provider error."""
        return cls(
            success=False,
            error=error.message,
            error_code="PROVIDER_ERROR",
            details={"status_code": error.status_code} if error.status_code else {},
            **fields,
        )
