import threading
import unittest

import httpx

from src.cluster.client import StaticCapabilities
from src.common.errors import ClusterError
from src.renderer.renderer import ManifestSource
from src.rollout.orchestrator import (
    EXIT_APPLY,
    EXIT_CANCELLED,
    EXIT_CONFIG,
    EXIT_INTERNAL,
    EXIT_PREREQUISITE,
    EXIT_STRUCTURAL,
    STAGES,
    RolloutOrchestrator,
)
from tests.fakes import (
    NAMESPACE,
    FakeClock,
    FakeCluster,
    gateway_manifest,
    make_target,
    programmed_status,
    storefront_source,
)

SECURITY_POLICY = {
    "apiVersion": "gateway.envoyproxy.io/v1alpha1",
    "kind": "SecurityPolicy",
    "metadata": {"name": "storefront-cors"},
    "spec": {},
}


class _CancellingCluster(FakeCluster):
    """Cancels the rollout as soon as the apply stage starts writing."""

    def __init__(self, event: threading.Event, **kwargs) -> None:
        super().__init__(**kwargs)
        self.event = event

    def apply(self, manifest, dry_run=False, **kwargs):
        self.event.set()
        return super().apply(manifest, dry_run, **kwargs)


class RolloutOrchestratorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.requests = []

    def _transport(self) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(200)

        return httpx.MockTransport(handler)

    def _orchestrator(self, cluster, source=None, **kwargs) -> RolloutOrchestrator:
        return RolloutOrchestrator(
            source or storefront_source(),
            cluster,
            clock=self.clock,
            sleeper=self.clock.sleep,
            transport=self._transport(),
            **kwargs,
        )

    def assertStages(self, result) -> None:
        self.assertEqual(list(result.stage_names()), list(STAGES))

    def test_complete_rollout(self) -> None:
        cluster = FakeCluster()
        result = self._orchestrator(cluster).run(make_target())
        self.assertStages(result)
        self.assertTrue(result.succeeded)
        self.assertEqual(result.exit_code, 0)
        self.assertIsNone(result.halted_stage)
        self.assertEqual(result.stage("static-validation").status, "passed")
        self.assertEqual(result.stage("apply").payload["counts"]["created"], 4)
        self.assertEqual(result.stage("readiness").status, "passed")
        self.assertEqual(result.stage("smoke-audit").payload["present"], "3/3")
        self.assertEqual(result.stage("health-probes").status, "passed")
        self.assertEqual(len(self.requests), 1)
        # Only the posture audit warns on the bare storefront manifests
        self.assertTrue(all(w.startswith("posture-audit") for w in result.warnings))

    def test_document_without_routes_halts_before_apply(self) -> None:
        cluster = FakeCluster()
        source = ManifestSource(base=(gateway_manifest(),))
        result = self._orchestrator(cluster, source=source).run(make_target())
        self.assertStages(result)
        self.assertFalse(result.succeeded)
        self.assertEqual(result.exit_code, EXIT_STRUCTURAL)
        self.assertEqual(result.halted_stage, "static-validation")
        self.assertIn("route record required", result.error)
        self.assertEqual(result.stage("apply").status, "skipped")
        self.assertEqual(cluster.applied, [])
        self.assertEqual(cluster.writes, 0)

    def test_missing_capability_halts_without_writes(self) -> None:
        cluster = FakeCluster(capabilities=["gateways.gateway.networking.k8s.io"])
        result = self._orchestrator(cluster).run(make_target())
        self.assertEqual(result.exit_code, EXIT_PREREQUISITE)
        self.assertEqual(result.halted_stage, "prerequisites")
        self.assertIn("httproutes.gateway.networking.k8s.io", result.error)
        self.assertEqual(cluster.writes, 0)
        self.assertEqual(result.stage("prerequisites").status, "failed")
        self.assertStages(result)

    def test_configured_capabilities_take_precedence(self) -> None:
        cluster = FakeCluster(capabilities=[])
        target = make_target(capabilities=("gateways.gateway.networking.k8s.io", "httproutes.gateway.networking.k8s.io"))
        self.assertTrue(self._orchestrator(cluster).run(target).succeeded)
        injected = self._orchestrator(FakeCluster(), capabilities=StaticCapabilities(())).run(make_target())
        self.assertEqual(injected.exit_code, EXIT_PREREQUISITE)

    def test_gateway_never_ready_still_verifies_and_probes(self) -> None:
        cluster = FakeCluster(gateway_statuses=[programmed_status(address=None, programmed=False)])
        result = self._orchestrator(cluster).run(make_target(readiness_timeout=30.0, poll_interval=5.0))
        self.assertStages(result)
        self.assertTrue(result.succeeded)
        self.assertEqual(result.exit_code, 0)
        readiness = result.stage("readiness")
        self.assertEqual(readiness.status, "warning")
        self.assertEqual(readiness.payload["state"], "TimedOut")
        self.assertIn("events", readiness.payload["diagnostics"])
        verification = result.stage("verification")
        self.assertEqual(verification.payload["address"], "address not assigned")
        self.assertIn("address not assigned", verification.warnings)
        probes = result.stage("health-probes").payload["results"]
        self.assertTrue(probes[0]["skipped"])
        self.assertEqual(probes[0]["detail"], "skipped: address not assigned")
        self.assertTrue(probes[1]["succeeded"])
        self.assertEqual(self.requests, [])
        self.assertTrue(any(w.startswith("readiness") for w in result.warnings))

    def test_required_record_rejected_halts_with_apply_code(self) -> None:
        cluster = FakeCluster(reject=["orders"])
        result = self._orchestrator(cluster).run(make_target())
        self.assertEqual(result.exit_code, EXIT_APPLY)
        self.assertEqual(result.halted_stage, "apply")
        self.assertEqual(result.stage("apply").status, "failed")
        self.assertEqual(result.stage("apply").payload["counts"]["created"], 3)
        self.assertEqual(result.stage("readiness").status, "skipped")

    def test_optional_record_rejected_is_a_warning(self) -> None:
        source = ManifestSource(base=storefront_source().base + (SECURITY_POLICY,))
        cluster = FakeCluster(
            reject=["SecurityPolicy"],
            capabilities=[
                "gateways.gateway.networking.k8s.io",
                "httproutes.gateway.networking.k8s.io",
                "securitypolicies.gateway.envoyproxy.io",
            ],
        )
        result = self._orchestrator(cluster, source=source).run(make_target())
        self.assertTrue(result.succeeded)
        self.assertEqual(result.stage("apply").status, "warning")
        self.assertEqual(len(result.stage("apply").warnings), 1)

    def test_dry_run_stops_after_apply(self) -> None:
        cluster = FakeCluster()
        result = self._orchestrator(cluster, dry_run=True).run(make_target())
        self.assertStages(result)
        self.assertTrue(result.succeeded)
        self.assertTrue(result.stage("apply").payload["dry_run"])
        self.assertEqual(result.stage("readiness").status, "skipped")
        self.assertEqual(result.stage("readiness").payload["reason"], "dry run")
        self.assertEqual(result.stage("apply").payload["dry_run_strategy"], "client")
        self.assertEqual(cluster.objects, {})

    def test_cancellation_during_rollout(self) -> None:
        event = threading.Event()
        cluster = _CancellingCluster(event)
        result = self._orchestrator(cluster, cancel_event=event).run(make_target())
        self.assertEqual(result.exit_code, EXIT_CANCELLED)
        self.assertEqual(result.halted_stage, "readiness")
        self.assertStages(result)

    def test_unknown_overlay_is_a_config_error(self) -> None:
        result = self._orchestrator(FakeCluster()).run(make_target(overlays=("staging",)))
        self.assertEqual(result.exit_code, EXIT_CONFIG)
        self.assertEqual(result.halted_stage, "render")

    def test_namespace_creation_failure_halts(self) -> None:
        class _Forbidden(FakeCluster):
            def create_namespace(self, name: str) -> None:
                raise ClusterError("forbidden")

        result = self._orchestrator(_Forbidden()).run(make_target())
        self.assertEqual(result.exit_code, EXIT_APPLY)
        self.assertEqual(result.halted_stage, "apply")

    def test_unexpected_error_halts_with_a_report(self) -> None:
        class _Broken(FakeCluster):
            def list(self, kind, namespace, api_version=None):
                raise RuntimeError("connection pool exhausted")

        result = self._orchestrator(_Broken()).run(make_target())
        self.assertStages(result)
        self.assertEqual(result.exit_code, EXIT_INTERNAL)
        self.assertEqual(result.halted_stage, "verification")
        self.assertEqual(result.error, "RuntimeError: connection pool exhausted")
        self.assertEqual(result.stage("verification").status, "failed")
        self.assertEqual(result.stage("smoke-audit").status, "skipped")
        self.assertEqual(result.to_dict()["exit_code"], EXIT_INTERNAL)

    def test_health_check_transport_error_is_a_warning(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.InvalidURL("bad")

        orchestrator = RolloutOrchestrator(
            storefront_source(),
            FakeCluster(),
            clock=self.clock,
            sleeper=self.clock.sleep,
            transport=httpx.MockTransport(handler),
        )
        result = orchestrator.run(make_target())
        self.assertStages(result)
        self.assertTrue(result.succeeded)
        self.assertEqual(result.stage("health-probes").status, "warning")
        self.assertTrue(any("InvalidURL" in w for w in result.stage("health-probes").warnings))

    def test_result_serialises(self) -> None:
        result = self._orchestrator(FakeCluster()).run(make_target())
        data = result.to_dict()
        self.assertEqual(data["environment"], "prod")
        self.assertEqual([stage["name"] for stage in data["stages"]], list(STAGES))
        self.assertEqual(data["stages"][4]["payload"]["namespace"], NAMESPACE)


if __name__ == "__main__":
    unittest.main()
