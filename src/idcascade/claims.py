"""Local-tier verification — decodes token claims WITHOUT checking the signature.

This only proves a token is well-formed, unexpired, and internally
consistent. Anyone can mint such a token. Identities produced here carry
``TrustTier.LOCAL`` and every success is logged at WARNING.
"""

import base64
import binascii
import json
import logging
import time
from collections.abc import Callable
from urllib.parse import urlparse

from idcascade.errors import ErrorKind, VerificationError
from idcascade.verifier import TrustTier, VerifiedIdentity

logger = logging.getLogger("idcascade.claims")


def decode_segment(segment: str) -> dict:
    """Base64url-decode a token segment into a JSON object.

    Raises:
        ValueError: If the segment is not base64url, not UTF-8 JSON, or not an object.
    """
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, json.JSONDecodeError) as e:
        raise ValueError(str(e)) from e
    if not isinstance(data, dict):
        raise ValueError("payload is not a JSON object")
    return data


def project_from_issuer(iss) -> str | None:
    """Project id an issuer URL names (its last path segment), if any."""
    if not isinstance(iss, str) or not iss:
        return None
    path = urlparse(iss).path.rstrip("/")
    project = path.rsplit("/", 1)[-1]
    return project or None


def _is_number(value) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


class LocalClaimsVerifier:
    """Structural and temporal claim checks on an unverified token.

    Args:
        clock: Returns the current time in seconds since the epoch.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def verify(self, token: str) -> VerifiedIdentity:
        """Decode and check the payload claims.

        Raises:
            VerificationError: ``malformed_token``, ``expired``,
                ``audience_mismatch`` or ``missing_subject``.
        """
        parts = token.split(".")
        if len(parts) != 3:
            raise _failure("Malformed JWT", ErrorKind.MALFORMED_TOKEN)

        try:
            claims = decode_segment(parts[1])
        except ValueError as e:
            raise _failure(f"Malformed JWT payload: {e}", ErrorKind.MALFORMED_TOKEN)

        now = self._clock()
        exp = claims.get("exp")
        # NaN compares false both ways, so test for strictly-after
        if not _is_number(exp) or not exp > now:
            raise _failure("Token expired/invalid", ErrorKind.EXPIRED)

        aud = claims.get("aud")
        issuer_project = project_from_issuer(claims.get("iss"))
        if aud and issuer_project and aud != issuer_project:
            raise _failure(
                f"Audience {aud!r} does not match issuer project {issuer_project!r}",
                ErrorKind.AUDIENCE_MISMATCH,
            )

        sub = claims.get("sub")
        if not isinstance(sub, str) or not sub:
            raise _failure("Token has no subject", ErrorKind.MISSING_SUBJECT)

        email = claims.get("email")
        logger.warning(
            "Accepted token for %s on unsigned claims only (no signature check)", sub,
        )
        return VerifiedIdentity(
            subject_id=sub,
            email=email if isinstance(email, str) else "",
            tier=TrustTier.LOCAL,
        )


def _failure(message: str, kind: ErrorKind) -> VerificationError:
    return VerificationError(message, kind, tier=TrustTier.LOCAL)
