"""
Exception hierarchy for the PharmAuth verification engine.

Terminal classifications (invalid, revoked, …) are results, not errors.
These exceptions cover the cases where no classification can be made or a
write was refused.
"""

from __future__ import annotations


class VerificationError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False


class CodeValidationError(VerificationError):
    """The submitted code is malformed (wrong length or alphabet)."""


class NotFoundError(VerificationError):
    """A batch (or other owned resource) does not exist for the caller."""


class ConflictError(VerificationError):
    """The write conflicts with existing state; nothing was changed."""


class RateLimitExceeded(VerificationError):
    """The caller exhausted a rate-limit window.

    Args:
        scope: Limiter scope (``"request"`` or ``"verification"``).
        limit: Calls allowed per window.
        retry_after_s: Seconds until the window resets.
    """

    retryable = True

    def __init__(self, scope: str, limit: int, retry_after_s: int) -> None:
        super().__init__(f"{scope} rate limit of {limit} exceeded")
        self.scope = scope
        self.limit = limit
        self.retry_after_s = retry_after_s


class DependencyUnavailable(VerificationError):
    """An authoritative backend (store) failed or timed out."""

    retryable = True
