import unittest

from src.common.errors import StructuralValidationError
from src.common.resources import ResourceDocument, ResourceRecord
from src.validator.static import StaticValidator, raise_for_blocking
from tests.fakes import NAMESPACE, gateway_manifest, make_target, route_manifest


def _document(*manifests) -> ResourceDocument:
    return ResourceDocument(ResourceRecord.from_manifest(m, NAMESPACE) for m in manifests)


def _storefront(*extra) -> ResourceDocument:
    return _document(
        gateway_manifest(),
        route_manifest("customers"),
        route_manifest("products"),
        route_manifest("orders"),
        *extra,
    )


class StaticValidatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.validator = StaticValidator()
        self.target = make_target()

    def test_complete_document_passes(self) -> None:
        report = self.validator.validate(_storefront(), self.target)
        self.assertTrue(report.passed)
        self.assertEqual(report.findings, [])
        raise_for_blocking(report)

    def test_document_without_routes_is_blocked(self) -> None:
        report = self.validator.validate(_document(gateway_manifest()), self.target)
        self.assertFalse(report.passed)
        messages = [f.message for f in report.blocking]
        self.assertIn("route record required", messages)
        self.assertTrue(all(f.category == "structural" for f in report.blocking))
        with self.assertRaises(StructuralValidationError) as ctx:
            raise_for_blocking(report)
        self.assertIn("route record required", str(ctx.exception))
        self.assertEqual(ctx.exception.findings, report.blocking)

    def test_document_without_gateway_is_blocked(self) -> None:
        report = self.validator.validate(_document(route_manifest("orders")), self.target)
        self.assertIn("gateway_required", report.rules())

    def test_missing_required_path(self) -> None:
        target = make_target(required_paths=("/api/v1/orders", "/api/v1/payments"))
        report = self.validator.validate(_storefront(), target)
        self.assertEqual(report.rules(), ["required_path_missing"])
        self.assertIn("/api/v1/payments", report.blocking[0].message)

    def test_trailing_slash_matches_required_path(self) -> None:
        document = _document(
            gateway_manifest(),
            route_manifest("customers"),
            route_manifest("products"),
            route_manifest("orders", path="/api/v1/orders/"),
        )
        self.assertTrue(self.validator.validate(document, self.target).passed)

    def test_backend_outside_allow_list(self) -> None:
        report = self.validator.validate(_storefront(route_manifest("payments")), self.target)
        self.assertEqual(report.rules(), ["backend_not_allowed"])
        self.assertEqual(report.blocking[0].resource, "HTTPRoute storefront/payments")

    def test_empty_allow_list_denies_every_backend(self) -> None:
        report = self.validator.validate(_storefront(), make_target(allowed_backends=()))
        self.assertEqual(report.rules().count("backend_not_allowed"), 3)

    def test_route_parent_must_name_a_rendered_gateway(self) -> None:
        report = self.validator.validate(_storefront(route_manifest("orders-v2", gateway="internal")), self.target)
        self.assertIn("route_parent", report.rules())

    def test_environment_gateway_must_be_rendered(self) -> None:
        report = self.validator.validate(_storefront(), make_target(gateway="edge"))
        self.assertFalse(report.passed)
        self.assertEqual(report.rules(), ["gateway_unknown"])
        self.assertIn("'edge'", report.blocking[0].message)

    def test_unset_environment_gateway_is_not_checked(self) -> None:
        self.assertTrue(self.validator.validate(_storefront(), make_target(gateway=None)).passed)

    def test_listener_shape(self) -> None:
        gateway = gateway_manifest(listeners=[{"name": "http", "protocol": "HTTP"}, {"name": "grpc", "protocol": "HTTP", "port": "80"}])
        report = self.validator.validate(
            _document(gateway, route_manifest("customers"), route_manifest("products"), route_manifest("orders")),
            self.target,
        )
        self.assertEqual(report.rules(), ["gateway_listeners", "gateway_listeners"])

    def test_route_without_rules_or_backends(self) -> None:
        empty = route_manifest("orders")
        empty["spec"]["rules"] = []
        no_backend = route_manifest("products")
        del no_backend["spec"]["rules"][0]["backendRefs"]
        report = self.validator.validate(
            _document(gateway_manifest(), route_manifest("customers"), empty, no_backend), self.target
        )
        self.assertIn("route_rules", report.rules())
        self.assertIn("route_backends", report.rules())

    def test_relative_path_value(self) -> None:
        report = self.validator.validate(
            _storefront(route_manifest("orders-legacy", path="orders")),
            make_target(allowed_backends=("customers", "products", "orders", "orders-legacy")),
        )
        self.assertEqual(report.rules(), ["route_paths"])

    def test_missing_api_version(self) -> None:
        config = {"kind": "ConfigMap", "metadata": {"name": "settings"}}
        report = self.validator.validate(_storefront(config), self.target)
        self.assertEqual(report.rules(), ["api_version_missing"])


if __name__ == "__main__":
    unittest.main()
