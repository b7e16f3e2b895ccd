"""Verification error kinds and their HTTP mapping."""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Classified reason a token could not be turned into an identity."""

    MISSING_TOKEN = "missing_token"
    CONFIGURATION_UNAVAILABLE = "configuration_unavailable"
    NOT_INITIALIZED = "not_initialized"
    SIGNATURE_INVALID = "signature_invalid"
    EXPIRED = "expired"
    REMOTE_REJECTED = "remote_rejected"
    REMOTE_UNREACHABLE = "remote_unreachable"
    MALFORMED_TOKEN = "malformed_token"
    AUDIENCE_MISMATCH = "audience_mismatch"
    MISSING_SUBJECT = "missing_subject"


_CONFIGURATION_KINDS = frozenset({
    ErrorKind.CONFIGURATION_UNAVAILABLE,
    ErrorKind.NOT_INITIALIZED,
})


class VerificationError(Exception):
    """Raised when a token cannot be verified.

    Args:
        message: Human-readable reason (safe to return to the caller).
        kind: The classified failure.
        tier: Name of the tier that produced the failure, None for
            cascade-level failures.
        attempts: Reasons recorded by earlier tiers that fell through.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        *,
        tier: str | None = None,
        attempts: tuple[str, ...] = (),
    ):
        self.message = message
        self.kind = kind
        self.tier = tier
        self.attempts = attempts
        super().__init__(message)

    @property
    def is_configuration_error(self) -> bool:
        """True when the server is misconfigured rather than the token being bad."""
        return self.kind in _CONFIGURATION_KINDS

    @property
    def http_status(self) -> int:
        if self.is_configuration_error:
            return 500
        if self.kind is ErrorKind.REMOTE_UNREACHABLE:
            return 503
        return 401

    def with_attempts(self, attempts: tuple[str, ...]) -> "VerificationError":
        """Copy of this error carrying the fall-through history."""
        return VerificationError(
            self.message, self.kind, tier=self.tier, attempts=attempts,
        )

    def describe(self) -> str:
        prefix = f"{self.tier}: " if self.tier else ""
        return f"{prefix}{self.kind}: {self.message}"

    def __repr__(self) -> str:
        return f"VerificationError(kind={self.kind.value!r}, message={self.message!r})"
