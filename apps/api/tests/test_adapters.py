"""Provider gateway and asset storage adapter tests."""

from __future__ import annotations

import json
from pathlib import Path
import shutil
import tempfile
import unittest

import boto3
from botocore.stub import ANY, Stubber
import httpx

from mediagen.adapters.provider import FalProviderGateway
from mediagen.adapters.provider.base import ProviderError, ProviderJobState, ProviderRejected, ProviderTimeout
from mediagen.adapters.storage import LocalAssetStorage, S3AssetStorage, StorageError
from mediagen.adapters.thumbnails import SourceImageThumbnailer

_MODEL_ID = "fal-ai/bytedance/seedance/v1.5/pro/image-to-video"


class FalProviderGatewayTests(unittest.TestCase):
    def setUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {}

        def _handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            response = self.routes.get((request.method, request.url.path))
            if response is None:
                return httpx.Response(404, text="no route")
            return response

        self.gateway = FalProviderGateway(
            api_key="secret-key",
            queue_url="https://queue.provider.test",
            transport=httpx.MockTransport(_handler),
        )

    def test_submit_posts_params_with_callback_and_key_auth(self) -> None:
        self.routes[("POST", f"/{_MODEL_ID}")] = httpx.Response(200, json={"request_id": "req-abc"})

        request_id = self.gateway.submit(_MODEL_ID, {"prompt": "p"}, "https://api.test/api/v1/jobs/webhook")

        self.assertEqual(request_id, "req-abc")
        sent = self.requests[0]
        self.assertEqual(sent.headers["Authorization"], "Key secret-key")
        self.assertEqual(sent.url.params["fal_webhook"], "https://api.test/api/v1/jobs/webhook")
        self.assertEqual(json.loads(sent.content), {"prompt": "p"})

    def test_submit_without_request_id_is_an_error(self) -> None:
        self.routes[("POST", f"/{_MODEL_ID}")] = httpx.Response(200, json={"status": "IN_QUEUE"})

        with self.assertRaises(ProviderError):
            self.gateway.submit(_MODEL_ID, {}, "https://api.test/hook")

    def test_rejection_carries_status_code(self) -> None:
        self.routes[("POST", f"/{_MODEL_ID}")] = httpx.Response(422, json={"detail": "bad prompt"})

        with self.assertRaises(ProviderRejected) as ctx:
            self.gateway.submit(_MODEL_ID, {}, "https://api.test/hook")
        self.assertEqual(ctx.exception.status_code, 422)

    def test_missing_api_key_fails_before_any_request(self) -> None:
        gateway = FalProviderGateway(api_key=None, transport=httpx.MockTransport(lambda request: httpx.Response(200)))

        with self.assertRaises(ProviderError):
            gateway.submit(_MODEL_ID, {}, "https://api.test/hook")

    def test_timeouts_are_reported_as_provider_timeouts(self) -> None:
        def _slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = FalProviderGateway(api_key="k", transport=httpx.MockTransport(_slow))

        with self.assertRaises(ProviderTimeout):
            gateway.fetch_status(_MODEL_ID, "req-1")

    def test_status_uses_app_root_and_maps_states(self) -> None:
        path = "/fal-ai/bytedance/requests/req-1/status"
        cases = [
            ({"status": "IN_QUEUE"}, ProviderJobState.IN_QUEUE, None),
            ({"status": "in_progress"}, ProviderJobState.IN_PROGRESS, None),
            ({"status": "COMPLETED"}, ProviderJobState.COMPLETED, None),
            ({"status": "COMPLETED", "error": "NSFW"}, ProviderJobState.FAILED, "NSFW"),
            ({"status": "SOMETHING_NEW"}, ProviderJobState.UNKNOWN, None),
        ]
        for body, state, error in cases:
            with self.subTest(body=body):
                self.routes[("GET", path)] = httpx.Response(200, json=body)
                status = self.gateway.fetch_status(_MODEL_ID, "req-1")
                self.assertIs(status.state, state)
                self.assertEqual(status.error, error)

    def test_result_is_unwrapped_from_response_envelope(self) -> None:
        path = "/fal-ai/bytedance/requests/req-1"
        video = {"video": {"url": "https://cdn.test/v.mp4"}, "seed": 3}

        self.routes[("GET", path)] = httpx.Response(200, json={"response": video})
        self.assertEqual(self.gateway.fetch_result(_MODEL_ID, "req-1"), video)

        self.routes[("GET", path)] = httpx.Response(200, json=video)
        self.assertEqual(self.gateway.fetch_result(_MODEL_ID, "req-1"), video)

    def test_download_returns_bytes_and_content_type(self) -> None:
        self.routes[("GET", "/v.mp4")] = httpx.Response(200, content=b"video", headers={"content-type": "video/mp4"})

        data, content_type = self.gateway.download("https://cdn.provider.test/v.mp4")

        self.assertEqual((data, content_type), (b"video", "video/mp4"))
        self.assertNotIn("Authorization", self.requests[-1].headers)

    def test_download_failure_is_rejected(self) -> None:
        with self.assertRaises(ProviderRejected):
            self.gateway.download("https://cdn.provider.test/missing.mp4")


class LocalAssetStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = Path(tempfile.mkdtemp(prefix="mediagen-storage-"))
        self.storage = LocalAssetStorage(self.tmpdir, base_url="https://media.test/")

    def tearDown(self) -> None:
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_put_assigns_id_with_extension(self) -> None:
        asset_id = self.storage.put(b"frames", "video/mp4")

        self.assertTrue(asset_id.endswith(".mp4"))
        self.assertTrue(self.storage.exists(asset_id))
        self.assertEqual(self.storage.read(asset_id), b"frames")
        self.assertEqual(self.storage.url_for(asset_id), f"https://media.test/{asset_id}")

    def test_unknown_content_type_falls_back_to_bin(self) -> None:
        self.assertTrue(self.storage.put(b"x", "application/x-unknown-thing").endswith(".bin"))

    def test_path_traversal_ids_are_rejected(self) -> None:
        for asset_id in ("../secret", "a/b.png", "", "name.tar.gz"):
            with self.subTest(asset_id=asset_id):
                self.assertFalse(self.storage.exists(asset_id))
                with self.assertRaises(StorageError):
                    self.storage.url_for(asset_id)

    def test_source_image_is_used_as_thumbnail(self) -> None:
        thumbnailer = SourceImageThumbnailer()

        self.assertEqual(thumbnailer.thumbnail_for(source_asset_id="a.png", result_asset_id="b.mp4"), "a.png")


class S3AssetStorageTests(unittest.TestCase):
    @staticmethod
    def _client():
        return boto3.session.Session(
            aws_access_key_id="test",
            aws_secret_access_key="test",
            region_name="us-east-1",
        ).client("s3")

    def setUp(self) -> None:
        self.client = self._client()
        self.stubber = Stubber(self.client)
        self.stubber.activate()
        self.addCleanup(self.stubber.deactivate)
        self.storage = S3AssetStorage(bucket="media-bucket", client=self.client, url_expiry_seconds=60)

    def test_put_writes_object_under_prefix(self) -> None:
        self.stubber.add_response(
            "put_object",
            {},
            {
                "Bucket": "media-bucket",
                "Key": ANY,
                "Body": b"frames",
                "ContentType": "video/mp4",
            },
        )

        asset_id = self.storage.put(b"frames", "video/mp4")

        self.assertTrue(asset_id.endswith(".mp4"))
        self.stubber.assert_no_pending_responses()

    def test_exists_maps_not_found_to_false(self) -> None:
        self.stubber.add_response("head_object", {}, {"Bucket": "media-bucket", "Key": "assets/present.png"})
        self.stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

        self.assertTrue(self.storage.exists("present.png"))
        self.assertFalse(self.storage.exists("absent.png"))

    def test_exists_surfaces_other_errors(self) -> None:
        self.stubber.add_client_error("head_object", service_error_code="AccessDenied", http_status_code=403)

        with self.assertRaises(StorageError):
            self.storage.exists("secret.png")

    def test_put_failure_is_a_storage_error(self) -> None:
        self.stubber.add_client_error("put_object", service_error_code="InternalError", http_status_code=500)

        with self.assertRaises(StorageError):
            self.storage.put(b"x", "image/png")

    def test_presigned_url_targets_prefixed_key(self) -> None:
        storage = S3AssetStorage(bucket="media-bucket", client=self._client(), url_expiry_seconds=60)

        url = storage.url_for("clip.mp4")

        self.assertTrue(url.startswith("https://"))
        self.assertIn("media-bucket", url)
        self.assertIn("assets/clip.mp4", url)


if __name__ == "__main__":
    unittest.main()
