"""Service-account credential resolution from the process environment.

Two sources are tried in order, first success wins:

1. A single JSON blob (the file downloaded from the console's
   "Generate new private key" button, pasted into one variable).
2. Three discrete variables: project id, client email, private key.

Hosting dashboards usually cannot store real newlines in a single-line
variable, so literal ``\\n`` sequences in the private key are converted to
newlines regardless of the source.
"""

import json
import logging
import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field

from idcascade.config import IdentityConfig

logger = logging.getLogger("idcascade.credentials")

_ESCAPED_NEWLINE = "\\n"
_SERVICE_ACCOUNT_DOMAIN = ".iam.gserviceaccount.com"


class CredentialError(Exception):
    """Raised when one credential source is present but unusable."""


@dataclass(frozen=True, slots=True)
class CredentialSpec:
    """Normalized signing identity — what the trusted verifier is built from."""

    project_id: str
    client_email: str
    private_key: str = field(repr=False)
    source: str = "discrete"

    def __post_init__(self) -> None:
        for name in ("project_id", "client_email", "private_key"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
        if _ESCAPED_NEWLINE in self.private_key:
            raise ValueError("private_key still contains escaped newlines")


@dataclass(frozen=True, slots=True)
class Unavailable:
    """No source produced a usable credential. ``reasons`` is for diagnostics only."""

    reasons: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        base = "Service account credentials not configured."
        if not self.reasons:
            return base
        return f"{base} Details: {' '.join(self.reasons)}"


def normalize_private_key(value: str) -> str:
    """Turn literal backslash-n sequences into real newlines."""
    return value.replace(_ESCAPED_NEWLINE, "\n")


def _first(data: dict, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def project_from_client_email(client_email: str) -> str:
    """Project id embedded in a service-account email, or "" for other addresses.

    Example:
        ``"sa@my-proj.iam.gserviceaccount.com"`` -> ``"my-proj"``
    """
    _, at, domain = client_email.rpartition("@")
    if not at or not domain.endswith(_SERVICE_ACCOUNT_DOMAIN):
        return ""
    return domain[: -len(_SERVICE_ACCOUNT_DOMAIN)]


def parse_service_account(
    raw: str, *, fallback_project_id: str | None = None,
) -> CredentialSpec:
    """Parse a service-account JSON blob into a CredentialSpec.

    Accepts both the console's snake_case keys and camelCase keys.
    A blob without a project id borrows ``fallback_project_id``, then the
    project named in a service-account ``client_email``.

    Raises:
        CredentialError: If the blob is not a JSON object or lacks fields.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CredentialError(f"not valid JSON: {e.msg}")
    if not isinstance(data, dict):
        raise CredentialError("JSON is not an object")

    client_email = _first(data, "client_email", "clientEmail")
    private_key = normalize_private_key(_first(data, "private_key", "privateKey"))
    if not client_email or not private_key:
        raise CredentialError("JSON is missing client_email or private_key")

    project_id = (
        _first(data, "project_id", "projectId")
        or fallback_project_id
        or project_from_client_email(client_email)
    )
    if not project_id:
        raise CredentialError("JSON has no project_id and no fallback project id is set")

    return CredentialSpec(
        project_id=project_id,
        client_email=client_email,
        private_key=private_key,
        source="service_account",
    )


class CredentialStore:
    """Resolves and caches the process-wide CredentialSpec.

    The outcome (spec or Unavailable) is computed once and reused until
    ``reset()``. Concurrent first calls converge on a single cached outcome.

    Args:
        environ: Mapping to read variables from (default ``os.environ``).
        config: Variable names to read (default IdentityConfig()).
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        config: IdentityConfig | None = None,
    ) -> None:
        self._environ = environ
        self._config = config or IdentityConfig()
        self._lock = threading.Lock()
        self._outcome: CredentialSpec | Unavailable | None = None

    def resolve(self) -> CredentialSpec | Unavailable:
        """Return the cached outcome, resolving it on first use."""
        outcome = self._outcome
        if outcome is not None:
            return outcome
        with self._lock:
            if self._outcome is None:
                self._outcome = self._resolve()
            return self._outcome

    def reset(self) -> None:
        """Forget the cached outcome so the next resolve() reads the environment again."""
        with self._lock:
            self._outcome = None

    def _get(self, name: str) -> str:
        env = os.environ if self._environ is None else self._environ
        return (env.get(name) or "").strip()

    def _resolve(self) -> CredentialSpec | Unavailable:
        cfg = self._config
        reasons: list[str] = []
        fallback_project_id = self._get(cfg.project_id_var) or None

        raw = self._get(cfg.service_account_var)
        if raw:
            try:
                spec = parse_service_account(raw, fallback_project_id=fallback_project_id)
            except CredentialError as e:
                reasons.append(f"{cfg.service_account_var} {e}.")
                logger.warning("%s rejected: %s", cfg.service_account_var, e)
            else:
                logger.info("Credentials resolved from %s", cfg.service_account_var)
                return spec
        else:
            reasons.append(f"Missing {cfg.service_account_var} env var.")

        values = {
            cfg.project_id_var: self._get(cfg.project_id_var),
            cfg.client_email_var: self._get(cfg.client_email_var),
            cfg.private_key_var: self._get(cfg.private_key_var),
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            reasons.append(f"Missing fallback env vars: {', '.join(missing)}.")
            logger.warning("No usable credentials: %s", " ".join(reasons))
            return Unavailable(tuple(reasons))

        spec = CredentialSpec(
            project_id=values[cfg.project_id_var],
            client_email=values[cfg.client_email_var],
            private_key=normalize_private_key(values[cfg.private_key_var]),
            source="discrete",
        )
        logger.info("Credentials resolved from discrete variables")
        return spec
