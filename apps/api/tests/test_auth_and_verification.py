"""Bearer-token, identity and anonymous bot-verification tests."""

from __future__ import annotations

import base64
import unittest
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
import requests
from starlette.requests import Request

from app.adapters.auth import AuthVerificationError, FirebaseTokenVerifier, MockTokenVerifier, parse_tier_claim
from app.adapters.verification import (
    SessionOrChallengeVerifier,
    VerificationStatus,
    create_session_token,
    verify_session_token,
)
from app.core.config import get_settings
from app.core.identity import anonymous_identity_key, client_ip
from app.core.logging_safety import redact_url, safe_log_identifier
from app.main import create_app
from app.routes.dependencies import get_token_verifier
from app.schemas.usage import UserTier
from support import SettingsEnvCase


def _request(headers: dict[str, str], client: tuple[str, int] | None = ("10.0.0.9", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(key.lower().encode(), value.encode()) for key, value in headers.items()],
        "client": client,
    }
    return Request(scope)


class TokenVerifierTests(unittest.TestCase):
    def test_mock_tokens(self) -> None:
        verifier = MockTokenVerifier()
        self.assertEqual(verifier.verify_token("test:user-a").user_id, "user-a")
        self.assertIsNone(verifier.verify_token("test:user-a").tier)
        self.assertEqual(verifier.verify_token("test:user-a:Premium").tier, UserTier.PREMIUM)

        for token in ("user-a", "test:", "test:user-a:gold", "prod:user-a"):
            with self.subTest(token=token):
                with self.assertRaises(AuthVerificationError):
                    verifier.verify_token(token)

    def test_tier_claim_ignores_anonymous_and_unknown(self) -> None:
        self.assertIsNone(parse_tier_claim("anonymous"))
        self.assertIsNone(parse_tier_claim(None))
        self.assertEqual(parse_tier_claim(" basic "), UserTier.BASIC)

    def test_firebase_verifier_maps_claims(self) -> None:
        decoded = {"uid": "fb-user", "aud": "aud-1", "plan": "pro"}
        with patch("app.adapters.auth.firebase_auth.firebase_admin._apps", {"[DEFAULT]": object()}), patch(
            "app.adapters.auth.firebase_auth.firebase_auth.verify_id_token", return_value=decoded
        ):
            principal = FirebaseTokenVerifier(project_id="proj", audience="aud-1").verify_token("id-token")

        self.assertEqual(principal.user_id, "fb-user")
        self.assertEqual(principal.tier, UserTier.PRO)

    def test_firebase_verifier_rejects_wrong_audience(self) -> None:
        with patch("app.adapters.auth.firebase_auth.firebase_admin._apps", {"[DEFAULT]": object()}), patch(
            "app.adapters.auth.firebase_auth.firebase_auth.verify_id_token", return_value={"uid": "u", "aud": "other"}
        ):
            with self.assertRaises(AuthVerificationError):
                FirebaseTokenVerifier(project_id=None, audience="aud-1").verify_token("id-token")


class AuthProviderWiringTests(SettingsEnvCase):
    env = {"SCRIBEGATE_AUTH_PROVIDER": "firebase", "SCRIBEGATE_FIREBASE_AUDIENCE": "aud-1"}

    def test_firebase_provider_selected_from_settings(self) -> None:
        self.assertIsInstance(get_token_verifier(get_settings()), FirebaseTokenVerifier)


class IdentityTests(unittest.TestCase):
    def test_client_ip_precedence(self) -> None:
        self.assertEqual(client_ip(_request({"X-Forwarded-For": "198.51.100.1, 10.0.0.1", "X-Real-IP": "1.1.1.1"})), "198.51.100.1")
        self.assertEqual(client_ip(_request({"X-Real-IP": "1.1.1.1"})), "1.1.1.1")
        self.assertEqual(client_ip(_request({})), "10.0.0.9")
        self.assertEqual(client_ip(_request({}, client=None)), "unknown")

    def test_anonymous_key_depends_on_address_only(self) -> None:
        first = anonymous_identity_key(salt="s", ip="198.51.100.1")
        again = anonymous_identity_key(salt="s", ip=" 198.51.100.1 ")
        other_ip = anonymous_identity_key(salt="s", ip="198.51.100.2")

        self.assertEqual(first, again)
        self.assertNotEqual(first, other_ip)
        self.assertTrue(first.startswith("anon-"))
        self.assertNotIn("198.51.100.1", first)


    def test_log_fields_are_scrubbed(self) -> None:
        self.assertEqual(
            redact_url("https://cdn.test/audio/a.mp3?X-Amz-Signature=abc#t=1"),
            "https://cdn.test/audio/a.mp3",
        )
        self.assertEqual(redact_url(None), "-")
        self.assertEqual(safe_log_identifier("", prefix="jid"), "jid-missing")
        self.assertNotIn("user-a", safe_log_identifier("user-a", prefix="pid"))


class SessionTokenTests(unittest.TestCase):
    def test_round_trip_and_expiry(self) -> None:
        now = [1_000_000]
        token = create_session_token("secret", "2001:db8::1", ttl_seconds=60, now_ms=lambda: now[0])

        self.assertTrue(verify_session_token("secret", token, client_ip="2001:db8::1", now_ms=lambda: now[0]))
        self.assertFalse(verify_session_token("other", token, now_ms=lambda: now[0]))
        now[0] += 61_000
        self.assertFalse(verify_session_token("secret", token, now_ms=lambda: now[0]))

    def test_ip_mismatch_is_accepted(self) -> None:
        token = create_session_token("secret", "198.51.100.1")
        self.assertTrue(verify_session_token("secret", token, client_ip="203.0.113.5"))

    def test_malformed_tokens(self) -> None:
        garbage = base64.urlsafe_b64encode(b"only:two").decode().rstrip("=")
        for token in ("", "%%%", garbage, base64.urlsafe_b64encode(b"ip:notanumber:sig").decode()):
            with self.subTest(token=token):
                self.assertFalse(verify_session_token("secret", token))


class ChallengeVerifierTests(unittest.TestCase):
    def _verifier(self, session: MagicMock) -> SessionOrChallengeVerifier:
        return SessionOrChallengeVerifier(
            session_secret="secret",
            challenge_secret="challenge-secret",
            challenge_verify_url="https://challenge.test/siteverify",
            session=session,
        )

    def test_missing_tokens(self) -> None:
        result = self._verifier(MagicMock()).verify(session_token=None, challenge_token=None, client_ip="1.2.3.4")
        self.assertIs(result.status, VerificationStatus.MISSING)

    def test_valid_session_token_skips_challenge(self) -> None:
        session = MagicMock()
        token = create_session_token("secret", "1.2.3.4")

        result = self._verifier(session).verify(session_token=token, challenge_token="cf-token", client_ip="1.2.3.4")

        self.assertTrue(result.verified)
        self.assertEqual(result.method, "session")
        session.post.assert_not_called()

    def test_challenge_success_and_failure(self) -> None:
        session = MagicMock()
        session.post.return_value.json.return_value = {"success": True}
        result = self._verifier(session).verify(session_token=None, challenge_token="cf-token", client_ip="1.2.3.4")
        self.assertTrue(result.verified)
        self.assertEqual(
            session.post.call_args.kwargs["data"],
            {"secret": "challenge-secret", "response": "cf-token", "remoteip": "1.2.3.4"},
        )

        session.post.return_value.json.return_value = {"success": False, "error-codes": ["invalid-input-response"]}
        rejected = self._verifier(session).verify(session_token=None, challenge_token="cf-token", client_ip=None)
        self.assertIs(rejected.status, VerificationStatus.INVALID)

    def test_challenge_transport_error_is_invalid(self) -> None:
        session = MagicMock()
        session.post.side_effect = requests.Timeout("slow")

        result = self._verifier(session).verify(session_token=None, challenge_token="cf-token", client_ip=None)

        self.assertIs(result.status, VerificationStatus.INVALID)


class OptionalPrincipalTests(SettingsEnvCase):
    def test_preview_with_bad_bearer_is_rejected_not_downgraded(self) -> None:
        client = TestClient(create_app())
        response = client.post(
            "/api/v1/transcribe",
            json={"type": "audio_url", "content": "https://m.test/a.mp3", "action": "preview"},
            headers={"Authorization": "Bearer nope"},
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "auth_required")


if __name__ == "__main__":
    unittest.main()
