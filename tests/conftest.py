"""Test fixtures for idcascade tests.

All tests are offline — they generate RSA keys, sign tokens manually, and
mock the key-set and lookup endpoints using httpx MockTransport.
"""

import base64
import json
import uuid
from datetime import UTC, datetime, timedelta

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

PROJECT_ID = "scoop-duty-test"
CLIENT_EMAIL = f"firebase-adminsdk@{PROJECT_ID}.iam.gserviceaccount.com"
ISSUER = f"https://securetoken.google.com/{PROJECT_ID}"


@pytest.fixture
def rsa_key_pair():
    """Generate a test RSA key pair."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


@pytest.fixture
def test_kid():
    return f"test-key-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def jwk_from_public_key(rsa_key_pair, test_kid):
    """Convert the test public key to JWK format."""
    from cryptography.hazmat.primitives.serialization import load_pem_public_key

    _, public_pem = rsa_key_pair
    public_key = load_pem_public_key(public_pem.encode("utf-8"))
    public_numbers = public_key.public_numbers()

    def _int_to_b64url(value: int) -> str:
        byte_length = (value.bit_length() + 7) // 8
        value_bytes = value.to_bytes(byte_length, byteorder="big")
        return base64.urlsafe_b64encode(value_bytes).rstrip(b"=").decode("ascii")

    return {
        "kty": "RSA",
        "kid": test_kid,
        "use": "sig",
        "alg": "RS256",
        "n": _int_to_b64url(public_numbers.n),
        "e": _int_to_b64url(public_numbers.e),
    }


@pytest.fixture
def jwks_response(jwk_from_public_key):
    """A JWKS response body with one key."""
    return {"keys": [jwk_from_public_key]}


@pytest.fixture
def jwks_transport(jwks_response):
    """MockTransport serving the test key set, with a request counter."""
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json=jwks_response)

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


@pytest.fixture
def service_account_env(rsa_key_pair):
    """Environment holding a service-account blob whose key uses escaped newlines."""
    private_pem, _ = rsa_key_pair
    blob = {
        "type": "service_account",
        "project_id": PROJECT_ID,
        "client_email": CLIENT_EMAIL,
        "private_key": private_pem.replace("\n", "\\n"),
    }
    return {"FIREBASE_SERVICE_ACCOUNT": json.dumps(blob)}


def create_test_token(
    private_key_pem: str,
    kid: str,
    *,
    user_id: str = "user-1",
    email: str | None = "user-1@example.com",
    project_id: str = PROJECT_ID,
    issuer: str | None = None,
    audience: str | None = None,
    expires_in: int = 3600,
) -> str:
    """Create an ID token signed with the given private key."""
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "aud": audience or project_id,
        "iss": issuer or f"https://securetoken.google.com/{project_id}",
        "iat": now - timedelta(seconds=max(0, -expires_in) + 60),
        "exp": now + timedelta(seconds=expires_in),
        "auth_time": int(now.timestamp()) - 60,
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, private_key_pem, algorithm="RS256", headers={"kid": kid})


def _b64url_json(obj) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj).encode("utf-8")).rstrip(b"=").decode("ascii")


def create_unsigned_token(claims, *, header: dict | None = None) -> str:
    """Three-part token whose signature segment is junk."""
    header = header or {"alg": "RS256", "kid": "unknown", "typ": "JWT"}
    return f"{_b64url_json(header)}.{_b64url_json(claims)}.bm90LWEtc2lnbmF0dXJl"
