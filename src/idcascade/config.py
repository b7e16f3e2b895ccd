"""idcascade configuration — environment variable names, endpoints, and timeouts."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

JWT_ALGORITHM = "RS256"

GOOGLE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)
SECURETOKEN_ISSUER_PREFIX = "https://securetoken.google.com/"
IDENTITY_LOOKUP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:lookup"


@dataclass(frozen=True, slots=True)
class IdentityConfig:
    """Where credentials come from and how each verification tier behaves.

    The defaults match a Firebase project: a service-account blob or the
    discrete project/email/key triplet for the trusted tier, and the web API
    key for the remote Identity Toolkit lookup.

    Example:
        IdentityConfig()                              # All defaults
        IdentityConfig(remote_timeout=8.0)            # Slower network
        IdentityConfig(allow_local_fallback=False)    # Never accept unsigned claims
    """

    service_account_var: str = "FIREBASE_SERVICE_ACCOUNT"
    project_id_var: str = "FIREBASE_PROJECT_ID"
    client_email_var: str = "FIREBASE_CLIENT_EMAIL"
    private_key_var: str = "FIREBASE_PRIVATE_KEY"
    api_key_vars: tuple[str, ...] = ("FIREBASE_WEB_API_KEY", "NEXT_PUBLIC_FIREBASE_API_KEY")
    jwks_url: str = GOOGLE_JWKS_URL
    issuer_prefix: str = SECURETOKEN_ISSUER_PREFIX
    lookup_url: str = IDENTITY_LOOKUP_URL
    remote_timeout: float = 5.0
    jwks_timeout: float = 10.0
    jwks_cache_ttl: float = 3600.0  # 1 hour
    allow_local_fallback: bool = True
    leeway: int = 0

    def __post_init__(self) -> None:
        if self.remote_timeout <= 0:
            raise ValueError("remote_timeout must be positive")
        if self.jwks_timeout <= 0:
            raise ValueError("jwks_timeout must be positive")
        if self.leeway < 0:
            raise ValueError("leeway must not be negative")

    def issuer_for(self, project_id: str) -> str:
        """Expected ``iss`` claim for tokens minted for ``project_id``."""
        return f"{self.issuer_prefix}{project_id}"

    def api_key(self, environ: Mapping[str, str] | None = None) -> str | None:
        """First non-empty shared lookup key among ``api_key_vars``."""
        env = os.environ if environ is None else environ
        for name in self.api_key_vars:
            value = (env.get(name) or "").strip()
            if value:
                return value
        return None
