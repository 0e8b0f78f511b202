"""Provider callback verification and idempotency tests."""

from __future__ import annotations

import base64
import time
import unittest

from fastapi.testclient import TestClient
import httpx

from mediagen.adapters.auth import MockTokenVerifier
from mediagen.adapters.webhook import FalWebhookVerifier, JwksKeySource, WebhookVerificationError
from mediagen.main import create_app
from mediagen.schemas.credits import TransactionKind
from mediagen.schemas.job import JobStatus

from testkit import (
    PNG_BYTES,
    DatabaseCase,
    StaticKeySource,
    WebhookSigner,
    encode,
    error_payload,
    ok_payload,
)

_WEBHOOK_PATH = "/api/v1/jobs/webhook"
_AUTH = {"Authorization": "Bearer test:user-1"}


class _WebhookApiCase(DatabaseCase):
    def setUp(self) -> None:
        super().setUp()
        self.signer = WebhookSigner()
        self.app = create_app(
            settings=self.make_settings(),
            database=self.database,
            provider=self.provider,
            storage=self.storage,
            webhook_verifier=FalWebhookVerifier(self.signer.key_source()),
            token_verifier=MockTokenVerifier(),
        )
        self.client = TestClient(self.app)
        self.ledger.grant("user-1", 100)
        source_id = self.storage.put(PNG_BYTES, "image/png")
        response = self.client.post(
            "/api/v1/jobs",
            headers=_AUTH,
            json={"sourceAssetId": source_id, "params": {"prompt": "waves"}},
        )
        self.assertEqual(response.status_code, 202)
        self.job_id = response.json()["jobId"]
        self.request_id = self.provider.submissions[-1]["request_id"]

    def _post_signed(self, payload: dict, **header_overrides):
        body = encode(payload)
        return self.client.post(_WEBHOOK_PATH, content=body, headers=self.signer.headers(body, **header_overrides))

    def _job(self) -> dict:
        response = self.client.get(f"/api/v1/jobs/{self.job_id}", headers=_AUTH)
        self.assertEqual(response.status_code, 200)
        return response.json()


class WebhookApiTests(_WebhookApiCase):
    def test_ok_callback_completes_job_in_background(self) -> None:
        response = self._post_signed(ok_payload(self.request_id))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"received": True, "status": "processing"})
        job = self._job()
        self.assertEqual(job["status"], JobStatus.COMPLETED.value)
        self.assertEqual(job["providerSeed"], 42)
        self.assertIsNotNone(job["resultAssetUrl"])
        self.assertEqual(self.ledger.get_balance("user-1"), 60)

    def test_replayed_callback_is_acknowledged_without_side_effects(self) -> None:
        self._post_signed(ok_payload(self.request_id))
        transactions_before = len(self.ledger.list_transactions("user-1"))

        replay = self._post_signed(ok_payload(self.request_id), request_id="delivery-2")

        self.assertEqual(replay.status_code, 200)
        self.assertEqual(replay.json(), {"received": True, "status": "already_processed"})
        self.assertEqual(len(self.provider.downloads), 1)
        self.assertEqual(len(self.ledger.list_transactions("user-1")), transactions_before)
        self.assertEqual(self.ledger.get_balance("user-1"), 60)

    def test_error_callback_fails_and_refunds(self) -> None:
        response = self._post_signed(error_payload(self.request_id, "NSFW content detected"))

        self.assertEqual(response.json()["status"], "failed")
        job = self._job()
        self.assertEqual(job["status"], JobStatus.FAILED.value)
        self.assertEqual(job["errorType"], "prompt_violation")
        self.assertEqual(self.ledger.get_balance("user-1"), 100)

        late_success = self._post_signed(ok_payload(self.request_id))
        self.assertEqual(late_success.json()["status"], "already_processed")
        self.assertEqual(self._job()["status"], JobStatus.FAILED.value)
        kinds = [tx.kind for tx in self.ledger.list_transactions("user-1")]
        self.assertEqual(kinds.count(TransactionKind.REFUND), 1)

    def test_ok_callback_without_video_fails(self) -> None:
        payload = ok_payload(self.request_id)
        payload["payload"] = {"seed": 1}

        response = self._post_signed(payload)

        self.assertEqual(response.json()["status"], "failed")
        self.assertEqual(self.ledger.get_balance("user-1"), 100)

    def test_payload_error_fails(self) -> None:
        payload = ok_payload(self.request_id)
        payload["payload_error"] = "Response payload too large"

        response = self._post_signed(payload)

        self.assertEqual(response.json()["status"], "failed")
        self.assertIn("payload too large", self._job()["error"])

    def test_tampered_body_is_rejected_without_state_change(self) -> None:
        body = encode(ok_payload(self.request_id))
        headers = self.signer.headers(body)
        tampered = encode(error_payload(self.request_id))

        response = self.client.post(_WEBHOOK_PATH, content=tampered, headers=headers)

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "INVALID_SIGNATURE")
        self.assertEqual(self._job()["status"], JobStatus.PROCESSING.value)
        self.assertEqual(self.ledger.get_balance("user-1"), 60)

    def test_missing_signature_headers_are_rejected(self) -> None:
        response = self.client.post(_WEBHOOK_PATH, content=encode(ok_payload(self.request_id)))

        self.assertEqual(response.status_code, 401)

    def test_stale_timestamp_is_rejected(self) -> None:
        response = self._post_signed(ok_payload(self.request_id), timestamp=int(time.time()) - 301)

        self.assertEqual(response.status_code, 401)

    def test_malformed_payload_returns_400(self) -> None:
        for body in (b"not json", encode({"status": "OK"}), encode({"request_id": "x", "status": "MAYBE"})):
            with self.subTest(body=body):
                response = self.client.post(_WEBHOOK_PATH, content=body, headers=self.signer.headers(body))
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["error"], "MALFORMED_PAYLOAD")

    def test_unknown_request_id_returns_404(self) -> None:
        response = self._post_signed(ok_payload("req-unknown"))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "JOB_NOT_FOUND")
        self.assertEqual(self._job()["status"], JobStatus.PROCESSING.value)


class UnverifiedWebhookTests(DatabaseCase):
    def test_disabled_verification_accepts_unsigned_callbacks(self) -> None:
        settings = self.make_settings(skip_webhook_verification=True)
        self.assertFalse(settings.webhook_verification_enabled)
        app = create_app(
            settings=settings,
            database=self.database,
            provider=self.provider,
            storage=self.storage,
            token_verifier=MockTokenVerifier(),
        )
        client = TestClient(app)
        self.ledger.grant("user-1", 100)
        job = app.state.orchestrator.submit(
            owner_id="user-1",
            model_id=None,
            source_asset_id=self.source_asset(),
            params={"prompt": "p"},
        )

        response = client.post(_WEBHOOK_PATH, content=encode(error_payload(job.external_request_id)))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "failed")

    def test_production_rejects_skipping_verification(self) -> None:
        with self.assertRaises(ValueError):
            self.make_settings(environment="production", skip_webhook_verification=True)


class FalWebhookVerifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.signer = WebhookSigner()
        self.now = 1_800_000_000
        self.verifier = FalWebhookVerifier(self.signer.key_source(), clock=lambda: self.now)

    def test_valid_signature_passes(self) -> None:
        body = b'{"request_id": "r"}'
        self.verifier.verify(body, self.signer.headers(body, timestamp=self.now))

    def test_any_listed_key_may_sign(self) -> None:
        other = WebhookSigner()
        verifier = FalWebhookVerifier(
            StaticKeySource(other.public_key_bytes, self.signer.public_key_bytes),
            clock=lambda: self.now,
        )
        body = b"{}"
        verifier.verify(body, self.signer.headers(body, timestamp=self.now))

    def test_timestamp_window_is_inclusive_of_leeway(self) -> None:
        body = b"{}"
        self.verifier.verify(body, self.signer.headers(body, timestamp=self.now - 300))
        self.verifier.verify(body, self.signer.headers(body, timestamp=self.now + 300))
        with self.assertRaises(WebhookVerificationError):
            self.verifier.verify(body, self.signer.headers(body, timestamp=self.now + 301))

    def test_invalid_inputs_are_rejected(self) -> None:
        body = b"{}"
        good = self.signer.headers(body, timestamp=self.now)
        variants = {
            "non_hex_signature": {**good, "x-fal-webhook-signature": "zz"},
            "non_numeric_timestamp": {**good, "x-fal-webhook-timestamp": "soon"},
            "wrong_user": {**good, "x-fal-webhook-user-id": "someone-else"},
            "missing_request_id": {k: v for k, v in good.items() if k != "x-fal-webhook-request-id"},
        }
        for name, headers in variants.items():
            with self.subTest(name=name):
                with self.assertRaises(WebhookVerificationError):
                    self.verifier.verify(body, headers)

    def test_empty_key_set_is_rejected(self) -> None:
        verifier = FalWebhookVerifier(StaticKeySource(), clock=lambda: self.now)
        body = b"{}"
        with self.assertRaises(WebhookVerificationError):
            verifier.verify(body, self.signer.headers(body, timestamp=self.now))


class JwksKeySourceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.signer = WebhookSigner()
        self.calls = 0
        self.fail = False
        self.now = 0.0

        encoded = base64.urlsafe_b64encode(self.signer.public_key_bytes).rstrip(b"=").decode("ascii")

        def _handler(request: httpx.Request) -> httpx.Response:
            self.calls += 1
            if self.fail:
                return httpx.Response(503)
            return httpx.Response(200, json={"keys": [{"kty": "OKP", "crv": "Ed25519", "x": encoded}]})

        self.source = JwksKeySource(
            "https://jwks.provider.test/.well-known/jwks.json",
            cache_seconds=60,
            clock=lambda: self.now,
            transport=httpx.MockTransport(_handler),
        )

    def test_keys_are_decoded_and_cached(self) -> None:
        self.assertEqual(self.source.public_keys(), [self.signer.public_key_bytes])
        self.source.public_keys()

        self.assertEqual(self.calls, 1)

    def test_stale_cache_is_used_when_refresh_fails(self) -> None:
        self.source.public_keys()
        self.now = 120.0
        self.fail = True

        self.assertEqual(self.source.public_keys(), [self.signer.public_key_bytes])
        self.assertEqual(self.calls, 2)

    def test_first_fetch_failure_is_a_verification_error(self) -> None:
        self.fail = True

        with self.assertRaises(WebhookVerificationError):
            self.source.public_keys()

    def test_failed_refresh_backs_off_before_refetching(self) -> None:
        self.source.public_keys()
        self.now = 120.0
        self.fail = True
        self.source.public_keys()

        self.now = 140.0
        self.assertEqual(self.source.public_keys(), [self.signer.public_key_bytes])
        self.assertEqual(self.calls, 2)

        self.fail = False
        self.now = 151.0
        self.assertEqual(self.source.public_keys(), [self.signer.public_key_bytes])
        self.assertEqual(self.calls, 3)

    def test_unavailable_keys_fail_fast_during_backoff(self) -> None:
        self.fail = True
        with self.assertRaises(WebhookVerificationError):
            self.source.public_keys()

        self.now = 10.0
        with self.assertRaises(WebhookVerificationError):
            self.source.public_keys()
        self.assertEqual(self.calls, 1)

        self.fail = False
        self.now = 31.0
        self.assertEqual(self.source.public_keys(), [self.signer.public_key_bytes])
        self.assertEqual(self.calls, 2)


if __name__ == "__main__":
    unittest.main()
