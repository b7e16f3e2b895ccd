"""Remote-tier verification — asks the identity service who a token belongs to.

No local signing keys are needed: the token and a shared API key are sent to
the Identity Toolkit ``accounts:lookup`` endpoint over TLS, and the service
answers with the account the token was issued to. One call per attempt, no
retries, no caching.
"""

import logging

import httpx

from idcascade.config import IdentityConfig
from idcascade.errors import ErrorKind, VerificationError
from idcascade.verifier import TrustTier, VerifiedIdentity

logger = logging.getLogger("idcascade.remote")


class RemoteVerifier:
    """Async client for the identity lookup endpoint.

    Args:
        api_key: Shared lookup key. Empty or None leaves the verifier unavailable.
        config: Lookup URL and timeout (default IdentityConfig()).
    """

    def __init__(
        self,
        api_key: str | None,
        config: IdentityConfig | None = None,
        *,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or None
        self._config = config or IdentityConfig()
        self._transport = _transport

    def available(self) -> bool:
        return self._api_key is not None

    async def verify(self, token: str) -> VerifiedIdentity:
        """Look the token up remotely.

        Raises:
            VerificationError: ``remote_rejected`` on a non-2xx answer or when no
                account matches; ``remote_unreachable`` on network failure or
                timeout; ``not_initialized`` if no API key is configured.
        """
        if self._api_key is None:
            raise VerificationError(
                "Remote lookup key not configured",
                ErrorKind.NOT_INITIALIZED,
                tier=TrustTier.REMOTE,
            )

        kwargs: dict = {"timeout": self._config.remote_timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        try:
            async with httpx.AsyncClient(**kwargs) as client:
                response = await client.post(
                    self._config.lookup_url,
                    params={"key": self._api_key},
                    json={"idToken": token},
                )
        except httpx.TransportError as e:
            logger.warning(
                "Identity lookup unreachable at %s: %s", self._config.lookup_url, type(e).__name__,
            )
            raise VerificationError(
                f"Identity lookup unreachable: {type(e).__name__}",
                ErrorKind.REMOTE_UNREACHABLE,
                tier=TrustTier.REMOTE,
            )

        data = _json_or_none(response)
        if not response.is_success:
            raise _rejected(
                f"Identity lookup returned {response.status_code}: {_remote_message(data)}",
            )

        users = data.get("users") if isinstance(data, dict) else None
        if not isinstance(users, list) or not users:
            raise _rejected("Identity lookup found no matching account")

        user = users[0]
        subject_id = user.get("localId") if isinstance(user, dict) else None
        if not isinstance(subject_id, str) or not subject_id:
            raise _rejected("Identity lookup returned an account without an id")
        email = user.get("email")
        return VerifiedIdentity(
            subject_id=subject_id,
            email=email if isinstance(email, str) else "",
            tier=TrustTier.REMOTE,
        )


def _json_or_none(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None


def _remote_message(data) -> str:
    """Pull ``error.message`` out of a Google API error body."""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
    return "no message"


def _rejected(message: str) -> VerificationError:
    return VerificationError(message, ErrorKind.REMOTE_REJECTED, tier=TrustTier.REMOTE)
