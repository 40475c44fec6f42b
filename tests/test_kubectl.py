import json
import subprocess
import unittest
from unittest import mock

import yaml

from src.cluster.kubectl import KubectlClient, parse_apply_status
from src.common.errors import ClusterError


class ParseApplyStatusTests(unittest.TestCase):
    def test_statuses(self) -> None:
        self.assertEqual(parse_apply_status("gateway.gateway.networking.k8s.io/storefront created\n"), "created")
        self.assertEqual(parse_apply_status("httproute.gateway.networking.k8s.io/orders unchanged"), "unchanged")
        self.assertEqual(
            parse_apply_status("httproute.gateway.networking.k8s.io/orders configured (server dry run)"),
            "configured",
        )
        self.assertEqual(parse_apply_status("serviceaccount/gateway created (dry run)"), "created")
        self.assertEqual(parse_apply_status(""), "configured")
        self.assertEqual(parse_apply_status("Warning: deprecated\nsecret/tls serverside-applied"), "configured")


class KubectlClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = KubectlClient("kubectl", context="prod-east")
        self.calls = []

    def _stub(self, output: str = "", error: ClusterError = None) -> None:
        def fake_run(args, input_data=None, timeout=None):
            self.calls.append((list(args), input_data, timeout))
            if error is not None:
                raise error
            return output

        self.client._run_command = fake_run  # type: ignore[assignment]

    def test_get_returns_none_when_not_found(self) -> None:
        self._stub(error=ClusterError("not found", stderr='Error from server (NotFound): gateways "x" not found'))
        self.assertIsNone(self.client.get("Gateway", "storefront", "x"))
        self.assertEqual(
            self.calls[0][0],
            ["get", "gateways.gateway.networking.k8s.io", "x", "-o", "json", "-n", "storefront"],
        )

    def test_get_propagates_other_errors(self) -> None:
        self._stub(error=ClusterError("forbidden", stderr="Error from server (Forbidden)"))
        with self.assertRaises(ClusterError):
            self.client.get("Gateway", "storefront", "x")

    def test_list_returns_items(self) -> None:
        self._stub(json.dumps({"items": [{"metadata": {"name": "orders"}}, "junk"]}))
        self.assertEqual(self.client.list("HTTPRoute", "storefront"), [{"metadata": {"name": "orders"}}])

    def test_invalid_json(self) -> None:
        self._stub("<html>")
        with self.assertRaises(ClusterError):
            self.client.list("HTTPRoute", "storefront")

    def test_apply_sends_manifest_on_stdin(self) -> None:
        self._stub("httproute.gateway.networking.k8s.io/orders created (server dry run)")
        manifest = {"apiVersion": "gateway.networking.k8s.io/v1", "kind": "HTTPRoute", "metadata": {"name": "orders"}}
        status = self.client.apply(manifest, dry_run=True)
        self.assertEqual(status, "created")
        args, input_data, _ = self.calls[0]
        self.assertEqual(args, ["apply", "-f", "-", "--dry-run=server"])
        self.assertEqual(yaml.safe_load(input_data), manifest)

    def test_apply_client_dry_run(self) -> None:
        self._stub("httproute.gateway.networking.k8s.io/orders created (dry run)")
        manifest = {"apiVersion": "gateway.networking.k8s.io/v1", "kind": "HTTPRoute", "metadata": {"name": "orders"}}
        self.assertEqual(self.client.apply(manifest, dry_run=True, dry_run_strategy="client"), "created")
        self.assertEqual(self.calls[0][0], ["apply", "-f", "-", "--dry-run=client"])

    def test_apply_rejects_unknown_dry_run_strategy(self) -> None:
        with self.assertRaises(ValueError):
            self.client.apply({"kind": "HTTPRoute", "metadata": {"name": "orders"}}, dry_run=True, dry_run_strategy="none")

    def test_get_forwards_request_timeout(self) -> None:
        self._stub(json.dumps({"kind": "Gateway"}))
        self.client.get("Gateway", "storefront", "storefront", timeout=5.0)
        self.assertEqual(self.calls[0][2], 5.0)

    def test_create_namespace_tolerates_already_exists(self) -> None:
        self._stub(error=ClusterError("exists", stderr='namespaces "storefront" already exists (AlreadyExists)'))
        self.client.create_namespace("storefront")

    def test_has_capability_reads_crd(self) -> None:
        self._stub(json.dumps({"kind": "CustomResourceDefinition"}))
        self.assertTrue(self.client.has_capability("httproutes.gateway.networking.k8s.io"))
        self.assertEqual(
            self.calls[0][0][:3],
            ["get", "customresourcedefinitions", "httproutes.gateway.networking.k8s.io"],
        )

    def test_proxy_get_uses_service_proxy(self) -> None:
        self._stub("ok")
        self.assertEqual(self.client.proxy_get("storefront", "orders", 8080, "healthz", 2.0), "ok")
        args, _, timeout = self.calls[0]
        self.assertEqual(
            args,
            [
                "get",
                "--raw",
                "/api/v1/namespaces/storefront/services/orders:8080/proxy/healthz",
                "--request-timeout=2s",
            ],
        )
        self.assertEqual(timeout, 3.0)


class RunCommandTests(unittest.TestCase):
    def test_context_and_timeout_are_passed(self) -> None:
        completed = subprocess.CompletedProcess(args=[], returncode=0, stdout=b"{}", stderr=b"")
        with mock.patch("src.cluster.kubectl.subprocess.run", return_value=completed) as run:
            output = KubectlClient("kubectl", context="prod-east", request_timeout=7.0)._run_command(["version"])
        self.assertEqual(output, "{}")
        command = run.call_args.args[0]
        self.assertEqual(command, ["kubectl", "--context", "prod-east", "version"])
        self.assertEqual(run.call_args.kwargs["timeout"], 7.0)

    def test_process_error_keeps_stderr(self) -> None:
        error = subprocess.CalledProcessError(1, ["kubectl"], output=b"", stderr=b"Error from server (NotFound)")
        with mock.patch("src.cluster.kubectl.subprocess.run", side_effect=error):
            with self.assertRaises(ClusterError) as ctx:
                KubectlClient()._run_command(["get", "gateways"])
        self.assertTrue(ctx.exception.not_found)
        self.assertEqual(ctx.exception.command, ["kubectl", "get", "gateways"])

    def test_missing_binary_and_timeout(self) -> None:
        with mock.patch("src.cluster.kubectl.subprocess.run", side_effect=FileNotFoundError()):
            with self.assertRaises(ClusterError) as ctx:
                KubectlClient("/missing/kubectl")._run_command(["version"])
        self.assertIn("not found", str(ctx.exception))
        with mock.patch(
            "src.cluster.kubectl.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["kubectl"], 1.0),
        ):
            with self.assertRaises(ClusterError) as ctx:
                KubectlClient()._run_command(["version"])
        self.assertIn("timed out", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
