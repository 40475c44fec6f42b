import unittest

from src.common.errors import ClusterError
from src.common.resources import ResourceRecord
from src.renderer.renderer import ManifestRenderer
from src.verifier.verifier import DeploymentVerifier, resolve_gateway_name, route_kinds_of
from tests.fakes import (
    NAMESPACE,
    FakeCluster,
    accepted_route_status,
    make_target,
    programmed_status,
    route_manifest,
    storefront_source,
)


def _deployed(cluster: FakeCluster) -> FakeCluster:
    cluster.namespaces.add(NAMESPACE)
    target = make_target()
    for record in ManifestRenderer(storefront_source()).render(target):
        cluster.apply(record.to_manifest())
    return cluster


class _RouteQueryFails(FakeCluster):
    def list(self, kind, namespace, api_version=None):
        raise ClusterError("the server could not find the requested resource")


class DeploymentVerifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.target = make_target()

    def test_ready_gateway_with_bound_routes(self) -> None:
        report = DeploymentVerifier(_deployed(FakeCluster())).verify(self.target, "storefront")
        self.assertTrue(report.ready)
        self.assertEqual(report.address, "203.0.113.10")
        self.assertEqual(report.route_count, 3)
        self.assertTrue(all(route.accepted for route in report.routes))
        self.assertEqual(report.notes, [])
        orders = next(route for route in report.routes if route.name == "orders")
        self.assertEqual(orders.paths, ("/api/v1/orders",))

    def test_address_not_assigned_is_a_value(self) -> None:
        cluster = _deployed(FakeCluster(gateway_statuses=[programmed_status(address=None, programmed=False)]))
        report = DeploymentVerifier(cluster).verify(self.target, "storefront")
        self.assertFalse(report.ready)
        self.assertFalse(report.address_assigned)
        self.assertIn("address not assigned", report.notes)
        self.assertEqual(report.to_dict()["address"], "address not assigned")
        self.assertEqual(report.route_count, 3)

    def test_missing_gateway(self) -> None:
        report = DeploymentVerifier(FakeCluster()).verify(self.target, "storefront")
        self.assertEqual(report.notes, ["gateway not found on cluster", "address not assigned"])
        self.assertEqual(report.route_count, 0)

    def test_routes_bound_elsewhere_are_ignored(self) -> None:
        cluster = _deployed(FakeCluster(route_statuses={"orders": accepted_route_status()}))
        other = route_manifest("admin", gateway="internal")
        other["metadata"]["namespace"] = NAMESPACE
        cluster.apply(other)
        report = DeploymentVerifier(cluster).verify(self.target, "storefront")
        self.assertEqual(sorted(route.name for route in report.routes), ["customers", "orders", "products"])
        pending = [route.name for route in report.routes if route.accepted is None]
        self.assertEqual(sorted(pending), ["customers", "products"])

    def test_route_query_failure_becomes_a_note(self) -> None:
        report = DeploymentVerifier(_deployed(_RouteQueryFails())).verify(self.target, "storefront")
        self.assertTrue(report.ready)
        self.assertTrue(any(note.startswith("HTTPRoute query failed") for note in report.notes))

    def test_gateway_name_resolution(self) -> None:
        document = ManifestRenderer(storefront_source()).render(self.target)
        self.assertEqual(resolve_gateway_name(make_target(gateway=None), document.gateways), "storefront")
        self.assertEqual(resolve_gateway_name(make_target(gateway="edge"), document.gateways), "edge")
        self.assertIsNone(resolve_gateway_name(make_target(gateway=None), []))

    def test_route_kinds(self) -> None:
        grpc = ResourceRecord.from_manifest(dict(route_manifest("rpc"), kind="GRPCRoute"), NAMESPACE)
        http = ResourceRecord.from_manifest(route_manifest("orders"), NAMESPACE)
        self.assertEqual(route_kinds_of([http, grpc, http]), ["HTTPRoute", "GRPCRoute"])
        self.assertEqual(route_kinds_of([]), ["HTTPRoute"])


if __name__ == "__main__":
    unittest.main()
