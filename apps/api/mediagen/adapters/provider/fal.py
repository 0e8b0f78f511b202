"""fal.ai queue API gateway."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mediagen.adapters.provider.base import (
    ProviderError,
    ProviderGateway,
    ProviderJobState,
    ProviderRejected,
    ProviderStatus,
    ProviderTimeout,
)
from mediagen.core.logging_safety import safe_log_identifier, safe_log_message

logger = logging.getLogger(__name__)

_KNOWN_STATES = {state.value for state in ProviderJobState}


def _app_root(model_id: str) -> str:
    """Status and result endpoints live under the first two path segments of the model id."""
    parts = model_id.strip("/").split("/")
    return "/".join(parts[:2])


class FalProviderGateway(ProviderGateway):
    def __init__(
        self,
        *,
        api_key: str | None,
        queue_url: str = "https://queue.fal.run",
        timeout_seconds: float = 30.0,
        download_timeout_seconds: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._queue_url = queue_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._download_timeout = httpx.Timeout(download_timeout_seconds)
        self._transport = transport

    def submit(self, model_id: str, params: dict[str, Any], callback_url: str) -> str:
        data = self._request(
            "POST",
            f"{self._queue_url}/{model_id}",
            params={"fal_webhook": callback_url},
            json=params,
        )
        request_id = data.get("request_id")
        if not isinstance(request_id, str) or not request_id:
            raise ProviderError("Provider response did not include a request id")

        logger.info(
            "provider.submitted model_id=%s request_id=%s",
            model_id,
            safe_log_identifier(request_id, prefix="rid"),
        )
        return request_id

    def fetch_status(self, model_id: str, request_id: str) -> ProviderStatus:
        data = self._request("GET", f"{self._queue_url}/{_app_root(model_id)}/requests/{request_id}/status")
        raw_state = str(data.get("status") or "").upper()
        state = ProviderJobState(raw_state) if raw_state in _KNOWN_STATES else ProviderJobState.UNKNOWN
        error = data.get("error")
        if error and state is ProviderJobState.COMPLETED:
            # fal reports failed requests as COMPLETED with an error attached.
            state = ProviderJobState.FAILED
        return ProviderStatus(state=state, error=str(error) if error else None)

    def fetch_result(self, model_id: str, request_id: str) -> dict[str, Any]:
        data = self._request("GET", f"{self._queue_url}/{_app_root(model_id)}/requests/{request_id}")
        # The queue wraps the model output in "response" on some endpoints.
        response = data.get("response")
        return response if isinstance(response, dict) else data

    def download(self, url: str) -> tuple[bytes, str | None]:
        try:
            with httpx.Client(
                timeout=self._download_timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = client.get(url)
        except httpx.TimeoutException as exc:
            raise ProviderTimeout("Artifact download timed out") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Artifact download failed: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderRejected(
                f"Artifact download failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return response.content, response.headers.get("content-type")

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderError("Provider API key is not configured")
        return {"Authorization": f"Key {self._api_key}", "Accept": "application/json"}

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        headers = self._headers()
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderTimeout(f"Provider request timed out: {method} {url}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Provider request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "provider.rejected method=%s status_code=%s body=%s",
                method,
                response.status_code,
                safe_log_message(response.text),
            )
            raise ProviderRejected(
                f"Provider returned status {response.status_code}: {safe_log_message(response.text)}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("Provider returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise ProviderError("Provider returned an unexpected response shape")
        return data


__all__ = ["FalProviderGateway"]
