"""Sign-in: Google ID token verification and signed session tokens."""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

import httpx
from jose import JWTError, jwt

from .config import Settings
from .eligibility import EligibilityGate
from .errors import Ineligible, Unauthenticated
from .records import Voter, normalize_email, utc_now
from .store import VoteStore

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "session"


@dataclass(frozen=True)
class GoogleIdentity:
    email: str
    name: str
    picture: Optional[str] = None


@dataclass(frozen=True)
class SessionIdentity:
    email: str
    name: str


class GoogleTokenVerifier:
    """Verifies Google ID tokens against Google's published signing keys."""

    def __init__(self, client_id: Optional[str], certs_url: str, issuers: Iterable[str],
                 cache_seconds: int = 3600, transport: httpx.AsyncBaseTransport = None):
        self.client_id = client_id
        self.certs_url = certs_url
        self.issuers = tuple(issuers)
        self.cache_seconds = cache_seconds
        self._transport = transport
        self._keys: Optional[dict] = None
        self._fetched_at = 0.0

    @classmethod
    def from_settings(cls, config: Settings) -> "GoogleTokenVerifier":
        return cls(
            client_id=config.GOOGLE_CLIENT_ID,
            certs_url=config.GOOGLE_CERTS_URL,
            issuers=config.GOOGLE_ISSUERS,
            cache_seconds=config.GOOGLE_CERTS_CACHE_SECONDS,
        )

    async def _signing_keys(self) -> dict:
        if self._keys is not None and time.monotonic() - self._fetched_at < self.cache_seconds:
            return self._keys
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=5.0) as client:
                response = await client.get(self.certs_url)
                response.raise_for_status()
                keys = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch Google signing keys: {e}")
            raise Unauthenticated("Identity provider unavailable, try again")

        self._keys = keys
        self._fetched_at = time.monotonic()
        return keys

    async def verify(self, id_token: str) -> GoogleIdentity:
        """
        Validate signature, audience, issuer, expiry and email verification.

        Raises:
            Unauthenticated: token rejected or sign-in not configured
        """
        if not self.client_id:
            raise Unauthenticated("Google sign-in is not configured")

        keys = await self._signing_keys()
        try:
            claims = jwt.decode(
                id_token,
                keys,
                algorithms=["RS256"],
                audience=self.client_id,
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            logger.warning(f"Rejected Google ID token: {e}")
            raise Unauthenticated("Invalid Google ID token")

        if claims.get("iss") not in self.issuers:
            raise Unauthenticated("Invalid Google ID token issuer")
        if claims.get("email_verified") not in (True, "true"):
            raise Unauthenticated("Google account email is not verified")

        email = normalize_email(claims.get("email", ""))
        if not email:
            raise Unauthenticated("Google ID token carries no email")

        return GoogleIdentity(email=email, name=claims.get("name") or "", picture=claims.get("picture"))


def _session_secret(config: Settings) -> str:
    """Signing key for session tokens; refuses the shipped placeholder."""
    if not config.sessions_configured:
        logger.error("SESSION_SECRET is unset or still the shipped placeholder")
        raise Unauthenticated("Sessions are not configured")
    return config.SESSION_SECRET


def issue_session_token(voter: Voter, config: Settings) -> Tuple[str, datetime]:
    """Create a signed session token for ``voter``. Returns (token, expires_at)."""
    secret = _session_secret(config)
    issued_at = utc_now()
    expires_at = issued_at + timedelta(hours=config.SESSION_TTL_HOURS)
    claims = {
        "sub": voter.email,
        "name": voter.name,
        "typ": SESSION_TOKEN_TYPE,
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(claims, secret, algorithm=config.SESSION_ALGORITHM)
    return token, expires_at


def read_session_token(token: str, config: Settings) -> SessionIdentity:
    """Decode a session token. Raises Unauthenticated when invalid or expired."""
    secret = _session_secret(config)
    try:
        claims = jwt.decode(token, secret, algorithms=[config.SESSION_ALGORITHM])
    except JWTError:
        raise Unauthenticated("Invalid or expired session")

    if claims.get("typ") != SESSION_TOKEN_TYPE or not claims.get("sub"):
        raise Unauthenticated("Invalid or expired session")
    return SessionIdentity(email=normalize_email(claims["sub"]), name=claims.get("name") or "")


async def sign_in_with_google(id_token: str, verifier: GoogleTokenVerifier, gate: EligibilityGate,
                              store: VoteStore, config: Settings) -> Tuple[Voter, str, datetime]:
    """
    Complete a Google sign-in.

    The identity must pass the eligibility gate before a voter record is
    created or refreshed.

    Returns:
        (voter, session_token, expires_at)
    """
    identity = await verifier.verify(id_token)
    if not gate.is_eligible(identity.email):
        logger.warning(f"Sign-in refused for ineligible identity: {identity.email}")
        raise Ineligible()

    voter = await store.upsert_voter(identity.email, identity.name, identity.picture)
    token, expires_at = issue_session_token(voter, config)
    logger.info(f"Voter signed in: {voter.email}")
    return voter, token, expires_at
