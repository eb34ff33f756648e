"""Pytest fixtures for the voting service.

Fixtures build an in-memory store seeded with a small ballot, an eligibility
gate, a Google token signer backed by a local RSA key, and an HTTP client
wired to the FastAPI app through httpx's ASGI transport.
"""

import time
from typing import AsyncGenerator, Callable, Dict

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from voting_api.auth import GoogleTokenVerifier, issue_session_token
from voting_api.config import settings
from voting_api.eligibility import EligibilityGate
from voting_api.main import app, limiter
from voting_api.records import CandidateSeed, Group, Voter
from voting_api.store import MemoryStore

GOOGLE_CLIENT_ID = "test-client.apps.googleusercontent.com"
GOOGLE_CERTS_URL = "https://google.test/oauth2/v3/certs"
SIGNING_KEY_ID = "test-key"

TEST_SESSION_SECRET = "test-session-secret"

VOTER_EMAIL = "alice.ug23@nsut.ac.in"
OTHER_VOTER_EMAIL = "bob.ug23@nsut.ac.in"

TEST_GROUPS = [
    Group(name="President", description="Vote for the President"),
    Group(name="Secretary", description="Vote for the Secretary"),
]

# Seeded in order, so ids are 1..4
TEST_CANDIDATES = [
    CandidateSeed("Asha Rao", "President Candidate", "President", "Library hours"),
    CandidateSeed("Dev Mehta", "President Candidate", "President"),
    CandidateSeed("Isha Kapoor", "Secretary Candidate", "Secretary"),
    CandidateSeed("Kabir Das", "Secretary Candidate", "Secretary", "Open minutes"),
]


@pytest.fixture(autouse=True)
def session_secret(monkeypatch) -> str:
    """Give every test a private session signing key."""
    monkeypatch.setattr(settings, "SESSION_SECRET", TEST_SESSION_SECRET)
    return TEST_SESSION_SECRET


@pytest.fixture
async def store() -> MemoryStore:
    """Memory store with the test ballot and two registered voters."""
    memory = MemoryStore()
    await memory.reset_election(TEST_GROUPS, TEST_CANDIDATES)
    await memory.upsert_voter(VOTER_EMAIL, "Alice")
    await memory.upsert_voter(OTHER_VOTER_EMAIL, "Bob")
    return memory


@pytest.fixture
def gate() -> EligibilityGate:
    return EligibilityGate("nsut.ac.in", [VOTER_EMAIL, OTHER_VOTER_EMAIL])


@pytest.fixture(scope="session")
def google_keys() -> Dict:
    """RSA key pair standing in for Google's signing key.

    Returns the private PEM and the published JWKS document.
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption()
    )
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo
    )
    public_jwk = jwk.construct(public_pem, algorithm="RS256").to_dict()
    public_jwk["kid"] = SIGNING_KEY_ID
    public_jwk["use"] = "sig"
    return {"private_pem": private_pem, "jwks": {"keys": [public_jwk]}}


@pytest.fixture
def sign_google_token(google_keys: Dict) -> Callable[..., str]:
    """Helper fixture to mint Google-style ID tokens.

    Returns a function taking the email plus any claim overrides.
    """
    def _sign(email: str, **overrides) -> str:
        now = int(time.time())
        claims = {
            "iss": "https://accounts.google.com",
            "aud": GOOGLE_CLIENT_ID,
            "sub": "1234567890",
            "email": email,
            "email_verified": True,
            "name": "Test Student",
            "picture": "https://example.test/avatar.png",
            "iat": now,
            "exp": now + 3600,
        }
        claims.update(overrides)
        return jwt.encode(
            claims,
            google_keys["private_pem"],
            algorithm="RS256",
            headers={"kid": SIGNING_KEY_ID}
        )

    return _sign


@pytest.fixture
def certs_requests() -> list:
    """Records every request made to the fake certificate endpoint."""
    return []


@pytest.fixture
def verifier(google_keys: Dict, certs_requests: list) -> GoogleTokenVerifier:
    """Verifier reading signing keys from an in-process transport."""
    def handler(request: httpx.Request) -> httpx.Response:
        certs_requests.append(request)
        return httpx.Response(200, json=google_keys["jwks"])

    return GoogleTokenVerifier(
        client_id=GOOGLE_CLIENT_ID,
        certs_url=GOOGLE_CERTS_URL,
        issuers=["accounts.google.com", "https://accounts.google.com"],
        transport=httpx.MockTransport(handler)
    )


@pytest.fixture
async def api_client(store: MemoryStore, gate: EligibilityGate,
                     verifier: GoogleTokenVerifier) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for the voting API backed by the memory store.

    The ASGI transport does not run the lifespan, so app state is set here.
    """
    app.state.store = store
    app.state.gate = gate
    app.state.verifier = verifier
    limiter.enabled = False

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    limiter.enabled = True


@pytest.fixture
def auth_headers() -> Callable[[str], Dict[str, str]]:
    """Helper fixture building a bearer header for a session token."""
    def _headers(email: str = VOTER_EMAIL, name: str = "Alice") -> Dict[str, str]:
        token, _ = issue_session_token(Voter(email=email, name=name), settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin_token(monkeypatch) -> str:
    """Enable administrative routes for the duration of a test."""
    token = "test-admin-token"
    monkeypatch.setattr(settings, "ADMIN_TOKEN", token)
    return token
