"""VerificationCascade — main entry point for idcascade.

Tiers are tried strongest first: trusted (signature) → remote (lookup) →
local (unsigned claims). A tier is only skipped past when it is unavailable
or could not run; a trusted-tier rejection of the token itself is final, so a
forged token cannot be downgraded to a weaker tier.
"""

import logging
import threading
from collections.abc import Mapping

import httpx

from idcascade.claims import LocalClaimsVerifier
from idcascade.config import IdentityConfig
from idcascade.credentials import CredentialStore
from idcascade.errors import ErrorKind, VerificationError
from idcascade.remote import RemoteVerifier
from idcascade.verifier import TrustedVerifier, TrustTier, VerifiedIdentity

logger = logging.getLogger("idcascade.cascade")


class VerificationCascade:
    """Turns a bearer token into a VerifiedIdentity or a classified VerificationError.

    Any tier may be None (permanently absent). The cascade keeps no per-call
    state, so concurrent calls are independent.

    Args:
        trusted: Cryptographic verifier.
        remote: Remote lookup verifier.
        local: Unsigned claims verifier; None disables the local fallback.
    """

    def __init__(
        self,
        trusted: TrustedVerifier | None = None,
        remote: RemoteVerifier | None = None,
        local: LocalClaimsVerifier | None = None,
    ) -> None:
        self._trusted = trusted
        self._remote = remote
        self._local = local
        self._current_identity_dep = None

    @property
    def current_identity(self):
        """FastAPI dependency: the VerifiedIdentity behind the request's bearer token.

        Usage:
            cascade = VerificationCascade.from_env()

            @app.post("/create-customer")
            async def create_customer(identity=Depends(cascade.current_identity)):
                print(identity.subject_id)
        """
        if self._current_identity_dep is None:
            from idcascade.integrations.fastapi import create_current_identity_dep

            self._current_identity_dep = create_current_identity_dep(self)
        return self._current_identity_dep

    def health_router(self):
        """FastAPI router with ``GET /health`` reporting tier availability."""
        from idcascade.integrations.fastapi import create_health_router

        return create_health_router(self)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        config: IdentityConfig | None = None,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> "VerificationCascade":
        """Build every tier from environment variables named by ``config``."""
        config = config or IdentityConfig()
        store = CredentialStore(environ, config)
        return cls(
            trusted=TrustedVerifier(store, config, _transport=_transport),
            remote=RemoteVerifier(config.api_key(environ), config, _transport=_transport),
            local=LocalClaimsVerifier() if config.allow_local_fallback else None,
        )

    def tiers(self) -> dict[str, bool]:
        """Availability of each tier, strongest first."""
        return {
            TrustTier.TRUSTED.value: self._trusted is not None and self._trusted.available(),
            TrustTier.REMOTE.value: self._remote is not None and self._remote.available(),
            TrustTier.LOCAL.value: self._local is not None,
        }

    def diagnostics(self) -> dict:
        """JSON-safe configuration summary. Contains no secret material."""
        trusted = self._trusted
        return {
            "tiers": self.tiers(),
            "credential_source": trusted.credential_source if trusted else None,
            "trusted_error": trusted.init_error if trusted else None,
        }

    async def authenticate(self, token: str | None) -> VerifiedIdentity:
        """Verify a bearer token through the tiers.

        Raises:
            VerificationError: The final classified failure. ``attempts`` lists
                the tiers that fell through before it.
        """
        token = (token or "").strip()
        if not token:
            raise VerificationError("Missing auth token", ErrorKind.MISSING_TOKEN)

        failures: list[VerificationError] = []

        if self._trusted is not None and self._trusted.available():
            try:
                return await self._trusted.verify(token)
            except VerificationError as e:
                if e.kind is not ErrorKind.NOT_INITIALIZED:
                    logger.info("Token rejected by trusted tier: %s", e.message)
                    raise
                self._fall_through(e, failures)

        if self._remote is not None and self._remote.available():
            try:
                return await self._remote.verify(token)
            except VerificationError as e:
                self._fall_through(e, failures)

        attempts = tuple(f.describe() for f in failures)
        if self._local is not None:
            try:
                return self._local.verify(token)
            except VerificationError as e:
                raise e.with_attempts(attempts)

        if not failures:
            raise VerificationError(
                self._unconfigured_message(),
                ErrorKind.CONFIGURATION_UNAVAILABLE,
            )
        raise failures[-1].with_attempts(attempts[:-1])

    @staticmethod
    def _fall_through(error: VerificationError, failures: list[VerificationError]) -> None:
        logger.warning("Falling through %s", error.describe())
        failures.append(error)

    def _unconfigured_message(self) -> str:
        details = ["No verification tier is available."]
        if self._trusted is not None and self._trusted.init_error:
            details.append(self._trusted.init_error)
        if self._remote is None or not self._remote.available():
            details.append("No remote lookup API key configured.")
        details.append("Local claims fallback is disabled.")
        return " ".join(details)


_default_lock = threading.Lock()
_default_cascade: VerificationCascade | None = None


def get_default_cascade() -> VerificationCascade:
    """Process-wide cascade built from ``os.environ`` on first use."""
    global _default_cascade
    cascade = _default_cascade
    if cascade is not None:
        return cascade
    with _default_lock:
        if _default_cascade is None:
            _default_cascade = VerificationCascade.from_env()
        return _default_cascade


def reset_default_cascade() -> None:
    """Forget the process-wide cascade (tests, or after changing the environment)."""
    global _default_cascade
    with _default_lock:
        _default_cascade = None
