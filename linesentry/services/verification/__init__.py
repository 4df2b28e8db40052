"""Outcome verification for LineSentry."""

from linesentry.services.verification.outcomes import resolve_outcome
from linesentry.services.verification.settlement import settle_pending
from linesentry.services.verification.verifier import (
    ActualResult,
    OutcomeVerifier,
    VerificationResult,
)

__all__ = [
    "ActualResult",
    "OutcomeVerifier",
    "VerificationResult",
    "resolve_outcome",
    "settle_pending",
]
