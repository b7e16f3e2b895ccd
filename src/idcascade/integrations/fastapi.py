"""FastAPI dependencies and routes for idcascade."""

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Request

from idcascade.cascade import VerificationCascade
from idcascade.errors import VerificationError
from idcascade.verifier import TrustTier, VerifiedIdentity


def extract_bearer_token(header: str | None) -> str:
    """Token from an ``Authorization: Bearer <token>`` value ("" if absent)."""
    value = (header or "").strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == "bearer":
        return rest.strip()
    return value


def create_current_identity_dep(cascade: VerificationCascade):
    """Create a FastAPI dependency that authenticates the bearer token.

    Configuration failures map to 500, an unreachable lookup service to 503,
    and every token-trust failure to 401.
    """

    async def current_identity(request: Request) -> VerifiedIdentity:
        token = extract_bearer_token(request.headers.get("Authorization"))
        try:
            return await cascade.authenticate(token)
        except VerificationError as e:
            raise HTTPException(
                status_code=e.http_status,
                detail={"error": e.kind.value, "message": e.message},
            )

    return current_identity


def create_health_router(cascade: VerificationCascade) -> APIRouter:
    """Create a router serving ``GET /health`` with tier availability.

    ``ok`` is true when a signature-checking tier (trusted or remote) can
    run. The unsigned local tier alone reports ``ok: false``; its state is
    still listed under ``tiers``.
    """
    router = APIRouter(tags=["health"])

    @router.get("/health")
    async def health_endpoint():
        tiers = cascade.tiers()
        return {
            "ok": tiers[TrustTier.TRUSTED] or tiers[TrustTier.REMOTE],
            "tiers": tiers,
            "credential_source": cascade.diagnostics()["credential_source"],
            "time": datetime.now(UTC).isoformat(),
        }

    return router
