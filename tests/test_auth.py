"""Tests for Google ID token verification, session tokens and sign-in."""

import time

import httpx
import pytest
from jose import jwt

from voting_api.auth import (
    GoogleTokenVerifier,
    issue_session_token,
    read_session_token,
    sign_in_with_google,
)
from voting_api.config import INSECURE_SESSION_SECRET, settings
from voting_api.eligibility import EligibilityGate
from voting_api.errors import Ineligible, Unauthenticated
from voting_api.records import Voter, utc_now
from voting_api.store import MemoryStore

from conftest import GOOGLE_CERTS_URL, GOOGLE_CLIENT_ID, VOTER_EMAIL


class TestSessionTokens:
    """Tests for issuing and reading session tokens."""

    def test_round_trip(self):
        token, expires_at = issue_session_token(Voter(email=VOTER_EMAIL, name="Alice"), settings)

        identity = read_session_token(token, settings)

        assert identity.email == VOTER_EMAIL
        assert identity.name == "Alice"
        assert expires_at.tzinfo is not None

    def test_expired_token_is_rejected(self):
        expired = settings.model_copy(update={"SESSION_TTL_HOURS": -1})
        token, _ = issue_session_token(Voter(email=VOTER_EMAIL, name="Alice"), expired)

        with pytest.raises(Unauthenticated):
            read_session_token(token, settings)

    def test_token_signed_with_other_secret_is_rejected(self):
        other = settings.model_copy(update={"SESSION_SECRET": "another-secret"})
        token, _ = issue_session_token(Voter(email=VOTER_EMAIL, name="Alice"), other)

        with pytest.raises(Unauthenticated):
            read_session_token(token, settings)

    def test_token_without_session_type_is_rejected(self):
        """A token without the session type claim never authenticates."""
        token = jwt.encode(
            {"sub": VOTER_EMAIL, "exp": int(time.time()) + 60},
            settings.SESSION_SECRET,
            algorithm=settings.SESSION_ALGORITHM
        )

        with pytest.raises(Unauthenticated):
            read_session_token(token, settings)

    def test_garbage_is_rejected(self):
        with pytest.raises(Unauthenticated):
            read_session_token("not-a-token", settings)

    def test_placeholder_secret_cannot_issue(self):
        shipped = settings.model_copy(update={"SESSION_SECRET": INSECURE_SESSION_SECRET})

        with pytest.raises(Unauthenticated):
            issue_session_token(Voter(email=VOTER_EMAIL, name="Alice"), shipped)

    def test_placeholder_secret_cannot_read(self):
        """Tokens signed with the shipped default are refused even when it is still configured."""
        shipped = settings.model_copy(update={"SESSION_SECRET": INSECURE_SESSION_SECRET})
        forged = jwt.encode(
            {"sub": VOTER_EMAIL, "typ": "session", "exp": int(time.time()) + 60},
            INSECURE_SESSION_SECRET,
            algorithm=settings.SESSION_ALGORITHM
        )

        with pytest.raises(Unauthenticated):
            read_session_token(forged, shipped)
        with pytest.raises(Unauthenticated):
            read_session_token(forged, settings)


@pytest.mark.asyncio
class TestGoogleTokenVerifier:
    """Tests for Google ID token verification."""

    async def test_valid_token(self, verifier: GoogleTokenVerifier, sign_google_token):
        identity = await verifier.verify(sign_google_token("Asha.UG23@nsut.ac.in"))

        assert identity.email == "asha.ug23@nsut.ac.in"
        assert identity.name == "Test Student"
        assert identity.picture == "https://example.test/avatar.png"

    async def test_signing_keys_are_cached(self, verifier: GoogleTokenVerifier, sign_google_token,
                                           certs_requests: list):
        await verifier.verify(sign_google_token(VOTER_EMAIL))
        await verifier.verify(sign_google_token(VOTER_EMAIL))

        assert len(certs_requests) == 1
        assert str(certs_requests[0].url) == GOOGLE_CERTS_URL

    @pytest.mark.parametrize("overrides", [
        {"aud": "someone-else.apps.googleusercontent.com"},
        {"iss": "https://evil.example"},
        {"email_verified": False},
        {"exp": int(time.time()) - 60},
    ])
    async def test_rejected_claims(self, verifier: GoogleTokenVerifier, sign_google_token, overrides):
        with pytest.raises(Unauthenticated):
            await verifier.verify(sign_google_token(VOTER_EMAIL, **overrides))

    async def test_token_signed_by_unknown_key(self, verifier: GoogleTokenVerifier):
        forged = jwt.encode(
            {"aud": GOOGLE_CLIENT_ID, "iss": "accounts.google.com", "email": VOTER_EMAIL},
            "shared-secret",
            algorithm="HS256"
        )

        with pytest.raises(Unauthenticated):
            await verifier.verify(forged)

    async def test_unconfigured_client_id(self, sign_google_token):
        unconfigured = GoogleTokenVerifier(client_id=None, certs_url=GOOGLE_CERTS_URL, issuers=[])

        with pytest.raises(Unauthenticated):
            await unconfigured.verify(sign_google_token(VOTER_EMAIL))

    async def test_certificate_endpoint_down(self, sign_google_token):
        down = GoogleTokenVerifier(
            client_id=GOOGLE_CLIENT_ID,
            certs_url=GOOGLE_CERTS_URL,
            issuers=["accounts.google.com"],
            transport=httpx.MockTransport(lambda request: httpx.Response(503))
        )

        with pytest.raises(Unauthenticated):
            await down.verify(sign_google_token(VOTER_EMAIL))


@pytest.mark.asyncio
class TestSignInWithGoogle:
    """Tests for the complete sign-in flow."""

    async def test_eligible_sign_in_registers_voter(self, verifier, sign_google_token):
        memory = MemoryStore()
        gate = EligibilityGate("nsut.ac.in", ["newcomer@nsut.ac.in"])

        voter, token, expires_at = await sign_in_with_google(
            sign_google_token("newcomer@nsut.ac.in"), verifier, gate, memory, settings
        )

        assert voter.email == "newcomer@nsut.ac.in"
        assert voter.has_voted is False
        assert (await memory.get_voter("newcomer@nsut.ac.in")) is not None
        assert read_session_token(token, settings).email == "newcomer@nsut.ac.in"

    async def test_ineligible_identity_is_never_registered(self, verifier, sign_google_token):
        """Verified Google accounts outside the allow-list are refused.

        Verifies:
        - Ineligible is raised
        - No voter record is created
        """
        memory = MemoryStore()
        gate = EligibilityGate("nsut.ac.in", [])

        with pytest.raises(Ineligible):
            await sign_in_with_google(
                sign_google_token("outsider@nsut.ac.in"), verifier, gate, memory, settings
            )

        assert await memory.get_voter("outsider@nsut.ac.in") is None

    async def test_repeat_sign_in_keeps_vote_flag(self, verifier, sign_google_token, store: MemoryStore,
                                                  gate: EligibilityGate):
        await store.record_vote(VOTER_EMAIL, 1, cast_at=utc_now())

        voter, _, _ = await sign_in_with_google(
            sign_google_token(VOTER_EMAIL, name="Alice Renamed"), verifier, gate, store, settings
        )

        assert voter.has_voted is True
        assert voter.name == "Alice Renamed"
