"""Vulture whitelist — false positives that are actually used by consumers and frameworks."""

# ---------------------------------------------------------------------------
# Public API (used by request handlers, not internally)
# ---------------------------------------------------------------------------
from idcascade.cascade import VerificationCascade, get_default_cascade, reset_default_cascade

VerificationCascade.current_identity
VerificationCascade.health_router
get_default_cascade
reset_default_cascade

from idcascade.jwks import JWKSFetcher

JWKSFetcher.get_key

from idcascade.verifier import TrustedVerifier

TrustedVerifier.project_id
TrustedVerifier.reset

from idcascade.errors import VerificationError

VerificationError.is_configuration_error

# ---------------------------------------------------------------------------
# Dataclass / response fields (used for serialization)
# ---------------------------------------------------------------------------
_.subject_id
_.email
_.tier
_.attempts
_.health_endpoint
