"""Trusted-tier verification — full RS256 signature and claim checks against the issuer's keys."""

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum

import httpx
import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from idcascade.config import JWT_ALGORITHM, IdentityConfig
from idcascade.credentials import CredentialSpec, CredentialStore, Unavailable
from idcascade.errors import ErrorKind, VerificationError
from idcascade.jwks import JWKSFetcher

logger = logging.getLogger("idcascade.verifier")


class TrustTier(StrEnum):
    """Strength of the guarantee behind a VerifiedIdentity (strongest first)."""

    TRUSTED = "trusted"
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True, slots=True)
class VerifiedIdentity:
    """Who the bearer is, and which tier vouched for it."""

    subject_id: str
    tier: TrustTier
    email: str = ""


@dataclass(frozen=True, slots=True)
class _TrustedState:
    spec: CredentialSpec | None = None
    fetcher: JWKSFetcher | None = None
    error: str | None = None


class TrustedVerifier:
    """Verifies ID tokens cryptographically using the issuer's published keys.

    Built lazily from the CredentialStore on first use. If credentials are
    unavailable or the private key does not load, the verifier stays
    unavailable for the process lifetime (until ``reset()``) and
    ``init_error`` says why.

    Args:
        store: Credential source for the project this verifier trusts.
        config: Endpoints and leeway (default IdentityConfig()).
    """

    def __init__(
        self,
        store: CredentialStore,
        config: IdentityConfig | None = None,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._store = store
        self._config = config or IdentityConfig()
        self._transport = _transport
        self._lock = threading.Lock()
        self._state: _TrustedState | None = None

    def available(self) -> bool:
        return self._ensure().fetcher is not None

    @property
    def init_error(self) -> str | None:
        return self._ensure().error

    @property
    def project_id(self) -> str | None:
        spec = self._ensure().spec
        return spec.project_id if spec else None

    @property
    def credential_source(self) -> str | None:
        spec = self._ensure().spec
        return spec.source if spec else None

    def reset(self) -> None:
        """Drop the constructed state; the next call rebuilds it from the store."""
        with self._lock:
            self._state = None

    def _ensure(self) -> _TrustedState:
        state = self._state
        if state is not None:
            return state
        with self._lock:
            if self._state is None:
                self._state = self._build()
            return self._state

    def _build(self) -> _TrustedState:
        outcome = self._store.resolve()
        if isinstance(outcome, Unavailable):
            return _TrustedState(error=outcome.message)

        try:
            serialization.load_pem_private_key(
                outcome.private_key.encode("utf-8"), password=None,
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            logger.error(
                "Trusted verifier initialization failed: private key for %s does not load (%s)",
                outcome.client_email, type(e).__name__,
            )
            return _TrustedState(
                error=f"Trusted verifier initialization failed: private key does not load ({type(e).__name__})",
            )

        fetcher = JWKSFetcher(
            self._config.jwks_url,
            cache_ttl=self._config.jwks_cache_ttl,
            http_timeout=self._config.jwks_timeout,
            _transport=self._transport,
        )
        logger.info("Trusted verifier initialized for project %s", outcome.project_id)
        return _TrustedState(spec=outcome, fetcher=fetcher)

    async def verify(self, token: str) -> VerifiedIdentity:
        """Verify an ID token and return the identity it names.

        Checks: RS256 signature, expiration, issued-at, issuer, audience, subject.
        On unknown kid, triggers JWKS refresh (handles key rotation).

        Raises:
            VerificationError: ``not_initialized`` if the verifier is unavailable
                or the issuer keys cannot be loaded; ``expired`` for expired
                tokens; ``signature_invalid`` for any other rejection.
        """
        state = self._ensure()
        if state.fetcher is None or state.spec is None:
            raise VerificationError(
                state.error or "Trusted verifier not initialized",
                ErrorKind.NOT_INITIALIZED,
                tier=TrustTier.TRUSTED,
            )

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError:
            raise _rejected("Malformed token")

        if header.get("alg") != JWT_ALGORITHM:
            raise _rejected(f"Unexpected token algorithm {header.get('alg')!r}")
        kid = header.get("kid")
        if not kid:
            raise _rejected("Token missing kid header")

        jwk = await state.fetcher.get_key_or_refresh(kid)
        if jwk is None:
            if not state.fetcher.has_keys():
                raise VerificationError(
                    f"Issuer public keys unavailable: {state.fetcher.last_error or 'no keys loaded'}",
                    ErrorKind.NOT_INITIALIZED,
                    tier=TrustTier.TRUSTED,
                )
            raise _rejected("Unknown signing key")

        project_id = state.spec.project_id
        try:
            payload = jwt.decode(
                token,
                jwk.key,
                algorithms=[JWT_ALGORITHM],
                audience=project_id,
                issuer=self._config.issuer_for(project_id),
                leeway=self._config.leeway,
                options={"require": ["exp", "iat", "sub", "aud", "iss"]},
            )
        except jwt.ExpiredSignatureError:
            raise VerificationError(
                "Token has expired", ErrorKind.EXPIRED, tier=TrustTier.TRUSTED,
            )
        except jwt.InvalidAudienceError:
            raise _rejected("Invalid audience")
        except jwt.InvalidIssuerError:
            raise _rejected("Invalid issuer")
        except jwt.InvalidTokenError as e:
            raise _rejected(f"Invalid token: {e}")

        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub:
            raise _rejected("Token has an empty subject")
        email = payload.get("email")
        return VerifiedIdentity(
            subject_id=sub,
            email=email if isinstance(email, str) else "",
            tier=TrustTier.TRUSTED,
        )


def _rejected(message: str) -> VerificationError:
    return VerificationError(message, ErrorKind.SIGNATURE_INVALID, tier=TrustTier.TRUSTED)
