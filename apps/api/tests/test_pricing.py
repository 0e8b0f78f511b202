"""Admin-managed model pricing tests."""

from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from mediagen.adapters.auth import MockTokenVerifier
from mediagen.domain.pricing import PricingRule, rule_to_dict
from mediagen.domain.video_models import HAILUO_23_FAST_PRO, SEEDANCE_V15_PRO, VIDEO_MODELS
from mediagen.errors import InvalidParameter, UnknownModel
from mediagen.main import create_app
from mediagen.repositories.tables import ModelPricingRow
from mediagen.schemas.pricing import PricingSource
from mediagen.services.pricing import PricingService, check_rule_for_model

from testkit import DatabaseCase

_CUSTOM_RULE = PricingRule(credits_per_second=10, resolution_multipliers={"1080p": 2.0})


class PricingServiceTests(DatabaseCase):
    def setUp(self) -> None:
        super().setUp()
        self.now = 0.0
        self.pricing = PricingService(self.database, cache_seconds=60, clock=lambda: self.now)
        self.orchestrator = self.make_orchestrator(pricing=self.pricing)

    def _default_cost(self) -> int:
        return self.orchestrator.estimate_cost(model_id=SEEDANCE_V15_PRO.id, params={}).cost

    def test_built_in_rule_applies_without_override(self) -> None:
        self.assertIs(self.pricing.rule_for(SEEDANCE_V15_PRO), SEEDANCE_V15_PRO.pricing)
        self.assertEqual(self._default_cost(), 40)

    def test_override_is_persisted_and_priced(self) -> None:
        entry = self.pricing.save_rule(SEEDANCE_V15_PRO.id, _CUSTOM_RULE, description="launch", performed_by="ops-1")

        self.assertEqual(entry.source, PricingSource.CUSTOM)
        self.assertEqual(entry.updated_by, "ops-1")
        self.assertEqual(self._default_cost(), 50)
        estimate = self.orchestrator.estimate_cost(
            model_id=SEEDANCE_V15_PRO.id,
            params={"duration": "10", "resolution": "1080p"},
        )
        self.assertEqual(estimate.cost, 200)
        with self.database.transaction() as session:
            row = session.get(ModelPricingRow, SEEDANCE_V15_PRO.id)
            self.assertEqual(row.rule, rule_to_dict(_CUSTOM_RULE))
            self.assertEqual(row.description, "launch")

    def test_saving_twice_updates_the_same_override(self) -> None:
        self.pricing.save_rule(SEEDANCE_V15_PRO.id, _CUSTOM_RULE)
        self.pricing.save_rule(SEEDANCE_V15_PRO.id, PricingRule(credits_per_second=2))

        self.assertEqual(self._default_cost(), 10)
        custom = [entry for entry in self.pricing.list_pricing().models if entry.source is PricingSource.CUSTOM]
        self.assertEqual(len(custom), 1)

    def test_delete_restores_built_in_rule(self) -> None:
        self.pricing.save_rule(SEEDANCE_V15_PRO.id, _CUSTOM_RULE)

        entry = self.pricing.delete_rule(SEEDANCE_V15_PRO.id)

        self.assertEqual(entry.source, PricingSource.DEFAULT)
        self.assertEqual(self._default_cost(), 40)
        self.assertEqual(self.pricing.delete_rule(SEEDANCE_V15_PRO.id).source, PricingSource.DEFAULT)

    def test_overrides_from_other_workers_apply_after_cache_expiry(self) -> None:
        self.assertEqual(self._default_cost(), 40)
        other_worker = PricingService(self.database)
        other_worker.save_rule(SEEDANCE_V15_PRO.id, _CUSTOM_RULE)

        self.assertEqual(self._default_cost(), 40)
        self.now = 61.0
        self.assertEqual(self._default_cost(), 50)

    def test_rules_must_fit_the_model(self) -> None:
        cases = [
            (HAILUO_23_FAST_PRO.id, PricingRule(credits_per_second=5)),
            (SEEDANCE_V15_PRO.id, PricingRule(credits_per_second=5, resolution_multipliers={"8k": 4.0})),
            (
                HAILUO_23_FAST_PRO.id,
                PricingRule(credits_per_second=5, fixed_duration_seconds=6, resolution_multipliers={"720p": 1.0}),
            ),
        ]
        for model_id, rule in cases:
            with self.subTest(model_id=model_id, rule=rule):
                with self.assertRaises(InvalidParameter):
                    self.pricing.save_rule(model_id, rule)
        self.assertTrue(all(entry.source is PricingSource.DEFAULT for entry in self.pricing.list_pricing().models))

    def test_built_in_rules_fit_their_models(self) -> None:
        for model in VIDEO_MODELS:
            with self.subTest(model_id=model.id):
                check_rule_for_model(model, model.pricing)

    def test_unknown_model_is_rejected(self) -> None:
        with self.assertRaises(UnknownModel):
            self.pricing.save_rule("fal-ai/unknown", _CUSTOM_RULE)

    def test_validation_prices_test_params_without_saving(self) -> None:
        result = self.pricing.validate_rule(
            SEEDANCE_V15_PRO.id,
            _CUSTOM_RULE,
            {"duration": "10", "resolution": "1080p"},
        )

        self.assertTrue(result.valid)
        self.assertEqual(result.test_result, 200)
        self.assertEqual(self._default_cost(), 40)

    def test_validation_reports_problems_instead_of_raising(self) -> None:
        bad_rule = self.pricing.validate_rule(HAILUO_23_FAST_PRO.id, PricingRule(credits_per_second=5), {})
        bad_params = self.pricing.validate_rule(SEEDANCE_V15_PRO.id, _CUSTOM_RULE, {"resolution": "8k"})

        self.assertFalse(bad_rule.valid)
        self.assertIn("fixedDurationSeconds", bad_rule.error)
        self.assertFalse(bad_params.valid)
        self.assertIsNone(bad_params.test_result)

    def test_listing_covers_every_model(self) -> None:
        self.pricing.save_rule(SEEDANCE_V15_PRO.id, _CUSTOM_RULE)

        listing = self.pricing.list_pricing()

        self.assertEqual([entry.model_id for entry in listing.models], [model.id for model in VIDEO_MODELS])
        seedance = listing.models[0]
        self.assertEqual(seedance.rule.credits_per_second, 10)
        self.assertEqual(seedance.default_rule.credits_per_second, SEEDANCE_V15_PRO.pricing.credits_per_second)


def _auth(user_id: str, role: str | None = None) -> dict[str, str]:
    token = f"test:{user_id}" if role is None else f"test:{user_id}:{role}"
    return {"Authorization": f"Bearer {token}"}


class AdminPricingApiTests(DatabaseCase):
    def setUp(self) -> None:
        super().setUp()
        self.app = create_app(
            settings=self.make_settings(),
            database=self.database,
            provider=self.provider,
            storage=self.storage,
            webhook_verifier=None,
            token_verifier=MockTokenVerifier(),
        )
        self.client = TestClient(self.app)
        self.admin = _auth("ops-1", "admin")

    def _save(self, **body):
        payload = {"modelId": SEEDANCE_V15_PRO.id, "rule": {"creditsPerSecond": 10}}
        payload.update(body)
        return self.client.post("/api/v1/admin/pricing", headers=self.admin, json=payload)

    def test_pricing_routes_require_admin(self) -> None:
        requests = [
            ("GET", "/api/v1/admin/pricing"),
            ("POST", "/api/v1/admin/pricing"),
            ("POST", "/api/v1/admin/pricing/validate"),
            ("DELETE", f"/api/v1/admin/pricing/{SEEDANCE_V15_PRO.id}"),
        ]
        for method, path in requests:
            with self.subTest(method=method, path=path):
                self.assertEqual(self.client.request(method, path, json={}).status_code, 401)
                response = self.client.request(method, path, headers=_auth("user-1"), json={})
                self.assertEqual(response.status_code, 403)
                self.assertEqual(response.json()["error"], "FORBIDDEN")

    def test_saved_rule_prices_new_jobs(self) -> None:
        response = self._save(description="promo")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["source"], "custom")
        self.assertEqual(body["rule"]["creditsPerSecond"], 10)
        self.assertEqual(body["updatedBy"], "ops-1")

        estimate = self.client.get(
            "/api/v1/jobs/cost",
            headers=_auth("user-1"),
            params={"modelId": SEEDANCE_V15_PRO.id},
        )
        self.assertEqual(estimate.json()["cost"], 50)

        self.ledger.grant("user-1", 100)
        submitted = self.client.post(
            "/api/v1/jobs",
            headers=_auth("user-1"),
            json={"sourceAssetId": self.source_asset(), "params": {"prompt": "harbor"}},
        )
        self.assertEqual(submitted.status_code, 202)
        self.assertEqual(self.ledger.get_balance("user-1"), 50)

    def test_delete_accepts_model_ids_with_slashes(self) -> None:
        self._save()

        response = self.client.delete(f"/api/v1/admin/pricing/{SEEDANCE_V15_PRO.id}", headers=self.admin)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["source"], "default")
        listing = self.client.get("/api/v1/admin/pricing", headers=self.admin).json()
        self.assertTrue(all(entry["source"] == "default" for entry in listing["models"]))

    def test_invalid_rules_return_400(self) -> None:
        cases = [
            {"rule": {"creditsPerSecond": 0}},
            {"rule": {"creditsPerSecond": 5, "resolutionMultipliers": {"720p": -1}}},
            {"modelId": HAILUO_23_FAST_PRO.id, "rule": {"creditsPerSecond": 5}},
        ]
        for body in cases:
            with self.subTest(body=body):
                response = self._save(**body)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["error"], "INVALID_PARAMETER")

        unknown = self._save(modelId="fal-ai/unknown")
        self.assertEqual(unknown.status_code, 400)
        self.assertEqual(unknown.json()["error"], "UNKNOWN_MODEL")

    def test_validate_returns_test_result(self) -> None:
        response = self.client.post(
            "/api/v1/admin/pricing/validate",
            headers=self.admin,
            json={
                "modelId": SEEDANCE_V15_PRO.id,
                "rule": {"creditsPerSecond": 10, "resolutionMultipliers": {"1080p": 2}},
                "testParams": {"duration": "10", "resolution": "1080p"},
            },
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["valid"])
        self.assertEqual(body["testResult"], 200)

    def test_validate_reports_rule_errors_in_body(self) -> None:
        response = self.client.post(
            "/api/v1/admin/pricing/validate",
            headers=self.admin,
            json={"modelId": HAILUO_23_FAST_PRO.id, "rule": {"creditsPerSecond": 5}},
        )

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["valid"])
        self.assertIn("fixedDurationSeconds", response.json()["error"])


if __name__ == "__main__":
    unittest.main()
