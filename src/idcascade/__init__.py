"""idcascade — cascading ID-token verification for request handlers."""

__version__ = "0.1.0"

from idcascade.cascade import VerificationCascade, get_default_cascade, reset_default_cascade
from idcascade.config import IdentityConfig
from idcascade.credentials import CredentialSpec, CredentialStore, Unavailable
from idcascade.errors import ErrorKind, VerificationError
from idcascade.verifier import TrustTier, VerifiedIdentity

__all__ = [
    "CredentialSpec",
    "CredentialStore",
    "ErrorKind",
    "IdentityConfig",
    "TrustTier",
    "Unavailable",
    "VerificationCascade",
    "VerificationError",
    "VerifiedIdentity",
    "get_default_cascade",
    "reset_default_cascade",
]
