"""Error taxonomy for LeadHunter.

Each failure mode of a hunting or monitoring run maps to one exception
class so callers can decide whether to skip, stop, or retry.
"""

from typing import Optional


class LeadHunterError(Exception):
    """Base exception for LeadHunter domain errors."""

    pass


# =============================================================================
# CREDENTIALS / PROVIDER
# =============================================================================


class AuthExpiredError(LeadHunterError):
    """Raised when a tenant's Reddit credential cannot be refreshed."""

    def __init__(self, tenant_id: int, reason: str = "refresh failed"):
        super().__init__(f"Reddit credential for tenant {tenant_id} unusable: {reason}")
        self.tenant_id = tenant_id
        self.reason = reason


class ProviderError(LeadHunterError):
    """Raised when a call to Reddit fails."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class ProviderRateLimitedError(ProviderError):
    """Raised when Reddit (or the local rate budget) refuses a request."""

    def __init__(self, message: str = "Rate limited", retry_after: Optional[int] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ProviderUnavailableError(ProviderError):
    """Raised on Reddit 5xx responses, timeouts and connection failures."""

    pass


# =============================================================================
# HUNTING
# =============================================================================


class ScoringDegradedError(LeadHunterError):
    """Raised inside the scorer when model output cannot be used."""

    pass


class DuplicateLeadError(LeadHunterError):
    """Raised when a lead for (tenant, post) already exists."""

    def __init__(self, tenant_id: int, post_id: str):
        super().__init__(f"Lead for post {post_id} already exists for tenant {tenant_id}")
        self.tenant_id = tenant_id
        self.post_id = post_id


# =============================================================================
# LIFECYCLE
# =============================================================================


class LeadNotFoundError(LeadHunterError):
    """Raised when a lead does not exist or belongs to another tenant."""

    pass


class InvalidTransitionError(LeadHunterError):
    """Raised when a lead lifecycle transition is not allowed."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot transition lead from '{current}' to '{target}'")
        self.current = current
        self.target = target


class OutreachError(LeadHunterError):
    """Raised when the outreach DM could not be delivered.

    The lead keeps its previous status so the action can be retried.
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


__all__ = [
    "AuthExpiredError",
    "DuplicateLeadError",
    "InvalidTransitionError",
    "LeadHunterError",
    "LeadNotFoundError",
    "OutreachError",
    "ProviderError",
    "ProviderRateLimitedError",
    "ProviderUnavailableError",
    "ScoringDegradedError",
]
