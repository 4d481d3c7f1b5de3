"""
Tests for the provisioner contract, registry, mock and command provisioners.
"""

import json
import shlex
import sys
import textwrap
from pathlib import Path

import pytest

from stackplane.adapters.base import ProvisionContext
from stackplane.adapters.command import CommandProvisioner, CommandSettings
from stackplane.adapters.mock import MockProvisioner
from stackplane.adapters.registry import ProvisionerRegistry
from stackplane.core.engine.cancellation import CancellationToken
from stackplane.core.errors import ProvisioningError
from stackplane.core.models.stack import HandleKind, StackKind


def _context(stack: str = "dev-NetworkStack", **kwargs) -> ProvisionContext:
    defaults = {
        "kind": StackKind.NETWORK,
        "environment": "dev",
        "region": "us-west-2",
        "exports": {"VpcId": HandleKind.NETWORK, "PrivateSubnets": HandleKind.SUBNET},
    }
    defaults.update(kwargs)
    return ProvisionContext(stack=stack, **defaults)


# ── Context ──────────────────────────────────────────────────────────


class TestProvisionContext:
    def test_cancelled_without_token(self):
        assert not _context().cancelled

    def test_cancelled_follows_token(self):
        token = CancellationToken()
        ctx = _context(cancel_token=token)
        assert not ctx.cancelled
        token.cancel()
        assert ctx.cancelled


# ── Mock ─────────────────────────────────────────────────────────────


class TestMockProvisioner:
    def test_generates_declared_exports(self):
        mock = MockProvisioner()
        exports = mock.materialize(_context())
        assert set(exports) == {"VpcId", "PrivateSubnets"}
        assert exports["VpcId"].startswith("vpc-")
        assert isinstance(exports["PrivateSubnets"], list)
        assert len(exports["PrivateSubnets"]) == 2

    def test_deterministic(self):
        first = MockProvisioner().materialize(_context())
        second = MockProvisioner().materialize(_context())
        assert first == second

    def test_config_changes_handles(self):
        mock = MockProvisioner()
        first = mock.materialize(_context(config={"max_azs": 2}))
        second = mock.materialize(_context(config={"max_azs": 3}))
        assert first["VpcId"] != second["VpcId"]

    def test_endpoint_handles_are_urls(self):
        mock = MockProvisioner()
        exports = mock.materialize(
            _context("api", kind=StackKind.EVENT_API, exports={"ApiEndpoint": HandleKind.ENDPOINT})
        )
        assert exports["ApiEndpoint"].startswith("https://endpoint-")

    def test_failure_injection(self):
        mock = MockProvisioner()
        mock.set_failure("dev-NetworkStack", "no capacity")
        with pytest.raises(ProvisioningError, match="no capacity"):
            mock.materialize(_context())
        assert mock.live_stacks == {}

    def test_teardown_tracks_live_stacks(self):
        mock = MockProvisioner()
        mock.materialize(_context())
        assert "dev-NetworkStack" in mock.live_stacks
        mock.teardown(_context())
        assert mock.live_stacks == {}
        assert mock.calls("materialize") == ["dev-NetworkStack"]
        assert mock.calls("teardown") == ["dev-NetworkStack"]

    def test_teardown_failure_injection(self):
        mock = MockProvisioner()
        mock.set_teardown_failure("dev-NetworkStack")
        with pytest.raises(ProvisioningError):
            mock.teardown(_context())

    def test_reset(self):
        mock = MockProvisioner()
        mock.set_failure("dev-NetworkStack")
        with pytest.raises(ProvisioningError):
            mock.materialize(_context())
        mock.reset()
        assert mock.call_count == 0
        assert mock.materialize(_context())


# ── Registry ─────────────────────────────────────────────────────────


class TestProvisionerRegistry:
    def test_register_covers_all_kinds(self):
        registry = ProvisionerRegistry()
        mock = MockProvisioner()
        registry.register(mock)
        assert all(registry.get(kind) is mock for kind in StackKind)

    def test_register_subset(self):
        registry = ProvisionerRegistry()
        registry.register(MockProvisioner(), kinds={StackKind.NETWORK})
        assert registry.get(StackKind.NETWORK).name == "mock"
        assert registry.get(StackKind.COMPUTE) is None

    def test_materialize_receipt(self):
        registry = ProvisionerRegistry()
        registry.register(MockProvisioner())
        receipt = registry.materialize(_context())
        assert receipt.ok
        assert receipt.provisioner == "mock"
        assert receipt.operation == "materialize"
        assert set(receipt.exports) == {"VpcId", "PrivateSubnets"}
        assert receipt.duration_ms >= 0

    def test_failure_becomes_receipt(self):
        registry = ProvisionerRegistry()
        mock = MockProvisioner()
        mock.set_teardown_failure("dev-NetworkStack", "in use")
        registry.register(mock)
        receipt = registry.teardown(_context())
        assert receipt.failed
        assert receipt.operation == "teardown"
        assert receipt.error == "in use"

    def test_missing_provisioner(self):
        receipt = ProvisionerRegistry().materialize(_context())
        assert receipt.failed
        assert "No provisioner registered" in receipt.error

    def test_mock_mode(self):
        registry = ProvisionerRegistry(mock_mode=True)
        assert registry.mock_mode
        assert isinstance(registry.get(StackKind.COMPUTE), MockProvisioner)
        assert registry.materialize(_context()).ok

    def test_mock_mode_with_custom_mock(self):
        custom = MockProvisioner(provisioner_name="custom")
        registry = ProvisionerRegistry(mock_mode=True, mock_provisioner=custom)
        assert registry.get(StackKind.NETWORK) is custom

    def test_adapter_status(self):
        registry = ProvisionerRegistry()
        registry.register(MockProvisioner(available=False), kinds={StackKind.NETWORK})
        status = registry.adapter_status()
        assert status == {
            "network": {"provisioner": "mock", "available": False, "type": "MockProvisioner"}
        }


# ── Command ──────────────────────────────────────────────────────────


def _script(tmp_path: Path, body: str) -> str:
    """Write a helper script and return a shell prefix that runs it."""
    path = tmp_path / "provision.py"
    path.write_text(textwrap.dedent(body))
    return f"{shlex.quote(sys.executable)} {shlex.quote(str(path))}"


class TestCommandProvisioner:
    def test_reads_nested_outputs(self, tmp_path: Path):
        prefix = _script(
            tmp_path,
            """\
            import json, os, sys
            stack = os.environ["STACKPLANE_STACK"]
            outputs = {"VpcId": "vpc-" + os.environ["STACKPLANE_REGION"], "Stack": sys.argv[1]}
            with open(sys.argv[2], "w") as f:
                json.dump({stack: outputs}, f)
            """,
        )
        provisioner = CommandProvisioner(
            CommandSettings(deploy=f"{prefix} {{stack}} {{outputs_file}}", destroy=f"{prefix} x y")
        )
        exports = provisioner.materialize(_context())
        assert exports == {"VpcId": "vpc-us-west-2", "Stack": "dev-NetworkStack"}

    def test_passes_config_and_bindings(self, tmp_path: Path):
        prefix = _script(
            tmp_path,
            """\
            import json, os, sys
            outputs = {
                "config": json.loads(os.environ["STACKPLANE_CONFIG"]),
                "vpc": os.environ["STACKPLANE_BINDING_VPC_ID"],
                "subnets": json.loads(os.environ["STACKPLANE_BINDING_SUBNET_IDS"]),
                "extra": os.environ["EXTRA"],
            }
            with open(sys.argv[1], "w") as f:
                json.dump(outputs, f)
            """,
        )
        provisioner = CommandProvisioner(
            CommandSettings(
                deploy=f"{prefix} {{outputs_file}}",
                destroy="true",
                env={"EXTRA": "yes"},
            )
        )
        exports = provisioner.materialize(
            _context(
                "dev-DatabaseStack",
                kind=StackKind.DATABASE,
                config={"backup_retention": 7},
                bindings={"vpc_id": "vpc-1", "subnet_ids": ["s-a", "s-b"]},
            )
        )
        assert exports == {
            "config": {"backup_retention": 7},
            "vpc": "vpc-1",
            "subnets": ["s-a", "s-b"],
            "extra": "yes",
        }

    def test_nonzero_exit_raises_with_stderr(self, tmp_path: Path):
        prefix = _script(
            tmp_path,
            """\
            import sys
            sys.stderr.write("stack is in UPDATE_ROLLBACK_FAILED state")
            sys.exit(3)
            """,
        )
        provisioner = CommandProvisioner(CommandSettings(deploy=prefix, destroy=prefix))
        with pytest.raises(ProvisioningError, match="UPDATE_ROLLBACK_FAILED"):
            provisioner.teardown(_context())

    def test_no_outputs_file_means_no_exports(self, tmp_path: Path):
        prefix = _script(tmp_path, "print('deployed')\n")
        provisioner = CommandProvisioner(CommandSettings(deploy=prefix, destroy=prefix))
        assert provisioner.materialize(_context()) == {}

    def test_invalid_outputs_file(self, tmp_path: Path):
        prefix = _script(
            tmp_path,
            """\
            import sys
            with open(sys.argv[1], "w") as f:
                f.write("not json")
            """,
        )
        provisioner = CommandProvisioner(
            CommandSettings(deploy=f"{prefix} {{outputs_file}}", destroy=prefix)
        )
        with pytest.raises(ProvisioningError, match="not valid JSON"):
            provisioner.materialize(_context())

    def test_unknown_placeholder(self):
        provisioner = CommandProvisioner(CommandSettings(deploy="cdk deploy {nope}", destroy="true"))
        with pytest.raises(ProvisioningError, match="placeholder"):
            provisioner.materialize(_context())

    def test_cancellation_terminates_command(self, tmp_path: Path):
        prefix = _script(tmp_path, "import time\ntime.sleep(1.5)\n")
        provisioner = CommandProvisioner(
            CommandSettings(deploy=prefix, destroy=prefix, poll_interval=0.05)
        )
        token = CancellationToken()
        token.cancel("operator")
        with pytest.raises(ProvisioningError, match="cancelled"):
            provisioner.materialize(_context(cancel_token=token))

    def test_is_available(self):
        assert CommandProvisioner(
            CommandSettings(deploy=f"{shlex.quote(sys.executable)} -V", destroy="true")
        ).is_available()
        assert not CommandProvisioner(
            CommandSettings(deploy="definitely-not-a-real-binary deploy", destroy="true")
        ).is_available()

    def test_registry_wraps_command_failure(self, tmp_path: Path):
        prefix = _script(tmp_path, "import sys\nsys.exit(1)\n")
        registry = ProvisionerRegistry()
        registry.register(CommandProvisioner(CommandSettings(deploy=prefix, destroy=prefix)))
        receipt = registry.materialize(_context())
        assert receipt.failed
        assert receipt.provisioner == "command"
        assert "exited with code 1" in receipt.error


def test_flat_outputs_file_is_kept_whole(tmp_path: Path):
    from stackplane.adapters.command import _read_outputs

    path = tmp_path / "outputs.json"
    path.write_text(json.dumps({"other-stack": {"A": 1}, "VpcId": "vpc-1"}))
    assert _read_outputs(path, "dev-NetworkStack") == {"other-stack": {"A": 1}, "VpcId": "vpc-1"}
