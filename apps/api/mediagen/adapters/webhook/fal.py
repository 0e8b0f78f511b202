"""fal webhook signature verification (Ed25519 over a JWKS key set)."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Callable, Mapping
import hashlib
import logging
import threading
import time

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
import httpx

from mediagen.adapters.webhook.base import PublicKeySource, WebhookVerificationError, WebhookVerifier

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-fal-webhook-request-id"
USER_ID_HEADER = "x-fal-webhook-user-id"
TIMESTAMP_HEADER = "x-fal-webhook-timestamp"
SIGNATURE_HEADER = "x-fal-webhook-signature"


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def signing_message(request_id: str, user_id: str, timestamp: str, raw_body: bytes) -> bytes:
    body_digest = hashlib.sha256(raw_body).hexdigest()
    return "\n".join([request_id, user_id, timestamp, body_digest]).encode("utf-8")


class JwksKeySource(PublicKeySource):
    """Fetches the provider JWKS and caches it; a stale cache is served if a refresh fails.

    After a failed fetch no new request is made for ``retry_backoff_seconds``.
    """

    def __init__(
        self,
        url: str,
        *,
        cache_seconds: float = 24 * 60 * 60,
        timeout_seconds: float = 10.0,
        retry_backoff_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._cache_seconds = cache_seconds
        self._retry_backoff_seconds = retry_backoff_seconds
        self._timeout = httpx.Timeout(timeout_seconds)
        self._clock = clock
        self._transport = transport
        self._lock = threading.Lock()
        self._keys: list[bytes] | None = None
        self._fetched_at = 0.0
        self._retry_at: float | None = None

    def public_keys(self) -> list[bytes]:
        with self._lock:
            now = self._clock()
            if self._keys is not None and now - self._fetched_at < self._cache_seconds:
                return self._keys
            if self._retry_at is not None and now < self._retry_at:
                if self._keys is None:
                    raise WebhookVerificationError("Webhook signing keys are unavailable")
                return self._keys
            try:
                self._keys = self._fetch()
                self._fetched_at = now
                self._retry_at = None
            except (httpx.HTTPError, ValueError) as exc:
                self._retry_at = now + self._retry_backoff_seconds
                if self._keys is None:
                    raise WebhookVerificationError("Unable to fetch webhook signing keys") from exc
                logger.warning("webhook.jwks_refresh_failed using_stale_cache=true error=%s", exc)
            return self._keys

    def _fetch(self) -> list[bytes]:
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            response = client.get(self._url, headers={"Accept": "application/json"})
            response.raise_for_status()
            document = response.json()

        keys: list[bytes] = []
        for entry in document.get("keys") or []:
            encoded = entry.get("x") if isinstance(entry, dict) else None
            if not isinstance(encoded, str):
                continue
            try:
                keys.append(_b64url_decode(encoded))
            except (binascii.Error, ValueError):
                continue
        return keys


class FalWebhookVerifier(WebhookVerifier):
    def __init__(
        self,
        key_source: PublicKeySource,
        *,
        leeway_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._key_source = key_source
        self._leeway_seconds = leeway_seconds
        self._clock = clock

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> None:
        request_id = headers.get(REQUEST_ID_HEADER)
        user_id = headers.get(USER_ID_HEADER)
        timestamp = headers.get(TIMESTAMP_HEADER)
        signature_hex = headers.get(SIGNATURE_HEADER)
        if not (request_id and user_id and timestamp and signature_hex):
            raise WebhookVerificationError("Missing webhook signature headers")

        try:
            sent_at = int(timestamp)
        except ValueError:
            raise WebhookVerificationError("Invalid webhook timestamp") from None
        if abs(int(self._clock()) - sent_at) > self._leeway_seconds:
            raise WebhookVerificationError("Webhook timestamp outside the allowed window")

        try:
            signature = bytes.fromhex(signature_hex)
        except ValueError:
            raise WebhookVerificationError("Webhook signature is not hexadecimal") from None

        keys = self._key_source.public_keys()
        if not keys:
            raise WebhookVerificationError("No webhook signing keys available")

        message = signing_message(request_id, user_id, timestamp, raw_body)
        for key_bytes in keys:
            try:
                Ed25519PublicKey.from_public_bytes(key_bytes).verify(signature, message)
            except (InvalidSignature, ValueError):
                continue
            return

        raise WebhookVerificationError("Webhook signature did not match any signing key")


__all__ = [
    "FalWebhookVerifier",
    "JwksKeySource",
    "REQUEST_ID_HEADER",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "USER_ID_HEADER",
    "signing_message",
]
