"""Pytest configuration and shared fixtures."""

import time
from typing import Any, Dict, List, Optional, Tuple

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient

from awsinfra.auth.jwks import SigningKeyCache, rsa_public_key_to_jwk
from awsinfra.config import Settings, parse_role_map
from awsinfra.main import create_app

ISSUER = "https://cognito-idp.eu-west-1.amazonaws.com/eu-west-1_TEST"
AUDIENCE = "awsinfra-test-client"
JWKS_URL = ISSUER + "/.well-known/jwks.json"
KID = "test-key-1"


# ============================================================================
# Keys and tokens
# ============================================================================

def generate_rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def private_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return generate_rsa_key()


@pytest.fixture(scope="session")
def other_rsa_key() -> rsa.RSAPrivateKey:
    return generate_rsa_key()


class JwksServer:
    """Serves a JWKS document through httpx.MockTransport."""

    def __init__(self) -> None:
        self.keys: List[Tuple[str, rsa.RSAPublicKey]] = []
        self.requests = 0
        self.fail = False

    def add_key(self, kid: str, private_key: rsa.RSAPrivateKey) -> None:
        self.keys.append((kid, private_key.public_key()))

    def document(self) -> Dict[str, Any]:
        return {"keys": [rsa_public_key_to_jwk(kid, key) for kid, key in self.keys]}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if self.fail:
            raise httpx.ConnectError("issuer unreachable", request=request)
        return httpx.Response(200, json=self.document())

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def jwks_server(rsa_key) -> JwksServer:
    server = JwksServer()
    server.add_key(KID, rsa_key)
    return server


@pytest.fixture
def make_token(rsa_key):
    """Factory for RS256 tokens signed with the test key."""
    def _factory(
        sub: str = "user-123",
        groups: Optional[List[str]] = None,
        key: Optional[rsa.RSAPrivateKey] = None,
        kid: Optional[str] = KID,
        exp_in: int = 300,
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        payload: Dict[str, Any] = {
            "iss": ISSUER,
            "aud": AUDIENCE,
            "sub": sub,
            "iat": now,
            "exp": now + exp_in,
            "cognito:groups": groups if groups is not None else ["entry:create", "entry:read"],
        }
        payload.update(overrides)
        payload = {k: v for k, v in payload.items() if v is not None}
        headers = {"kid": kid} if kid else {}
        return jwt.encode(payload, private_pem(key or rsa_key), algorithm="RS256", headers=headers)
    return _factory


# ============================================================================
# Application
# ============================================================================

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/entries.db",
        jwt_issuer=ISSUER,
        jwt_audience=AUDIENCE,
        jwks_url=JWKS_URL,
        jwks_refresh_interval_seconds=0,
        jwks_min_refresh_interval_seconds=0,
        role_map=parse_role_map("writers=entry:create,entry:read;readers=entry:read"),
        log_level="DEBUG",
        log_json=False,
    )


@pytest.fixture
async def signing_keys(jwks_server, settings):
    cache = SigningKeyCache(
        settings.jwks_url,
        refresh_interval=0,
        min_refresh_interval=0,
        transport=jwks_server.transport(),
    )
    yield cache
    await cache.close()


class RecordingMetrics:
    """Metrics sink that remembers what it was given."""

    def __init__(self) -> None:
        self.counters: List[Tuple[str, Dict[str, str]]] = []
        self.timings: List[Tuple[str, float, Dict[str, str]]] = []

    def increment(self, name, tags=None):
        self.counters.append((name, dict(tags or {})))

    def timing(self, name, millis, tags=None):
        self.timings.append((name, millis, dict(tags or {})))


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
async def app(settings, signing_keys, metrics):
    application = create_app(settings=settings, signing_keys=signing_keys, metrics=metrics)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers(make_token):
    """Factory for Authorization headers."""
    def _factory(**kwargs) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(**kwargs)}"}
    return _factory
