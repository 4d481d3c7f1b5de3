"""
Tests for core models — stacks, bindings, receipts, run reports, config.
"""

import pydantic
import pytest

from stackplane.core.models import (
    Binding,
    BindingRequest,
    ComputeConfig,
    DatabaseConfig,
    EnvironmentConfig,
    HandleKind,
    Receipt,
    RunOutcome,
    RunReport,
    StackDefinition,
    StackKind,
    StackRecord,
    StackStatus,
)


class TestStackDefinition:
    def test_dependencies_union_without_duplicates(self):
        definition = StackDefinition(
            name="compute",
            kind=StackKind.COMPUTE,
            depends_on=["database"],
            bindings=[
                BindingRequest(param="vpc", stack="network", export="VpcId", kind=HandleKind.NETWORK),
                BindingRequest(
                    param="db", stack="database", export="Endpoint", kind=HandleKind.DATABASE
                ),
            ],
        )
        assert definition.dependencies == ["database", "network"]

    def test_get_binding(self):
        request = BindingRequest(param="vpc", stack="network", export="VpcId", kind=HandleKind.NETWORK)
        definition = StackDefinition(name="db", kind=StackKind.DATABASE, bindings=[request])
        assert definition.get_binding("network", "VpcId") == request
        assert definition.get_binding("network", "Other") is None

    def test_frozen(self):
        definition = StackDefinition(name="net", kind=StackKind.NETWORK)
        with pytest.raises(pydantic.ValidationError):
            definition.name = "other"

    def test_kind_from_string(self):
        definition = StackDefinition(name="api", kind="event-api", exports={"Url": "endpoint-handle"})
        assert definition.kind == StackKind.EVENT_API
        assert definition.exports["Url"] == HandleKind.ENDPOINT

    def test_unknown_kind_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            StackDefinition(name="x", kind="mainframe")

    def test_unknown_handle_kind_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            StackDefinition(name="x", kind="network", exports={"Out": "mystery-handle"})

    def test_dependency_containers_are_immutable(self):
        definition = StackDefinition(name="db", kind=StackKind.DATABASE, depends_on=["net"])
        assert definition.depends_on == ("net",)
        assert definition.bindings == ()
        with pytest.raises(AttributeError):
            definition.depends_on.append("other")


class TestBinding:
    def test_key_and_timestamp(self):
        binding = Binding(stack="net", export="VpcId", value="vpc-1", kind=HandleKind.NETWORK)
        assert binding.key == ("net", "VpcId")
        assert binding.materialized_at


class TestReceipt:
    def test_success(self):
        receipt = Receipt.success(provisioner="mock", stack="net", exports={"VpcId": "vpc-1"})
        assert receipt.ok
        assert not receipt.failed
        assert receipt.exports == {"VpcId": "vpc-1"}
        assert receipt.operation == "materialize"

    def test_failure(self):
        receipt = Receipt.failure(provisioner="mock", stack="net", error="boom", operation="teardown")
        assert receipt.failed
        assert receipt.error == "boom"
        assert receipt.operation == "teardown"


class TestRunReport:
    def test_ok_and_lookup(self):
        report = RunReport(
            run_id="run-1",
            outcome=RunOutcome.SUCCEEDED,
            stacks=[
                StackRecord(name="a", status=StackStatus.SUCCEEDED, exports={"Out": "x"}),
                StackRecord(name="b", status=StackStatus.SUCCEEDED),
            ],
        )
        assert report.ok
        assert report.get_stack("a").exports == {"Out": "x"}
        assert report.get_stack("zzz") is None
        assert report.exports() == {"a": {"Out": "x"}}

    def test_to_dict_is_json_ready(self):
        report = RunReport(
            outcome=RunOutcome.ROLLBACK_INCOMPLETE,
            stacks=[StackRecord(name="a", status=StackStatus.SUCCEEDED, teardown_error="stuck")],
            teardown_failures=["a"],
        )
        data = report.to_dict()
        assert data["outcome"] == "rollback_incomplete"
        assert data["stacks"][0]["status"] == "succeeded"
        assert data["teardown_failures"] == ["a"]
        assert not report.ok


class TestEnvironmentConfig:
    def test_resource_tags(self):
        env = EnvironmentConfig(name="dev", region="us-west-2", tags={"Owner": "platform"})
        assert env.resource_tags() == {
            "Environment": "dev",
            "Project": "aws-cdk-patterns",
            "Owner": "platform",
        }

    def test_deletion_protection_follows_retention(self):
        assert not DatabaseConfig(backup_retention=7).deletion_protection
        assert DatabaseConfig(backup_retention=8).deletion_protection

    def test_unknown_field_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ComputeConfig(desired_count=1, gpus=4)

    def test_defaults(self):
        env = EnvironmentConfig(name="x", region="eu-west-1")
        assert env.network.max_azs == 2
        assert env.compute.use_fargate_spot
        assert env.account is None
