"""
Tests for CLI commands — envs, config check, plan, deploy, destroy, history.
"""

import json
import shlex
import sys
import textwrap
from pathlib import Path

from click.testing import CliRunner

from stackplane.main import cli


def _invoke(config: Path, *args: str, input: str | None = None):
    runner = CliRunner()
    return runner.invoke(cli, ["--quiet", "--config", str(config), *args], input=input)


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "deploy" in result.output
        assert "plan" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestEnvsCommand:
    def test_lists_builtins(self, config_file: Path):
        result = _invoke(config_file, "envs")
        assert result.exit_code == 0
        for name in ("dev", "staging", "prod"):
            assert name in result.output

    def test_json(self, config_file: Path):
        result = _invoke(config_file, "envs", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["prod"]["region"] == "us-east-1"

    def test_invalid_config(self, tmp_path: Path):
        path = tmp_path / "stackplane.yml"
        path.write_text("environments: [oops\n")
        result = _invoke(path, "envs")
        assert result.exit_code == 1
        assert "Invalid YAML" in result.output


class TestConfigCheckCommand:
    def test_valid(self, config_file: Path):
        result = _invoke(config_file, "config", "check")
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "stackplane.yml"
        path.write_text("environments:\n  qa:\n    extends: nowhere\n")
        result = _invoke(path, "config", "check", "--json")
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["valid"] is False
        assert data["errors"]


class TestPlanCommand:
    def test_plan(self, config_file: Path):
        result = _invoke(config_file, "plan", "--env", "dev")
        assert result.exit_code == 0
        assert "1. dev-NetworkStack" in result.output
        assert "4. dev-ServerlessStack" in result.output

    def test_plan_json(self, config_file: Path):
        result = _invoke(config_file, "plan", "--env", "staging", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["order"][0] == "staging-NetworkStack"
        assert len(data["stacks"]) == 4

    def test_plan_unknown_env(self, config_file: Path):
        result = _invoke(config_file, "plan", "--env", "qa")
        assert result.exit_code == 1
        assert "Unknown environment" in result.output


class TestDeployCommand:
    def test_mock_deploy(self, config_file: Path):
        result = _invoke(config_file, "deploy", "--env", "dev", "--mock")
        assert result.exit_code == 0
        assert "Outcome: succeeded" in result.output
        assert "dev-ComputeStack" in result.output
        assert (config_file.parent / ".state" / "audit.ndjson").is_file()

    def test_mock_deploy_json(self, config_file: Path):
        result = _invoke(config_file, "deploy", "--mock", "--json", "--no-audit")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["report"]["outcome"] == "succeeded"
        assert data["report"]["order"][0] == "dev-NetworkStack"
        assert not (config_file.parent / ".state").exists()

    def test_selected_stack(self, config_file: Path):
        result = _invoke(
            config_file, "deploy", "--mock", "--json", "--stack", "dev-ServerlessStack"
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["report"]["order"] == [
            "dev-NetworkStack",
            "dev-ServerlessStack",
        ]

    def test_no_provisioner(self, config_file: Path):
        result = _invoke(config_file, "deploy", "--env", "dev")
        assert result.exit_code == 1
        assert "No provisioner configured" in result.output

    def test_failing_provisioner_rolls_back(self, tmp_path: Path):
        python = shlex.quote(sys.executable)
        path = tmp_path / "stackplane.yml"
        path.write_text(
            textwrap.dedent(
                f"""\
                provisioner:
                  deploy: {python} -c 'import sys; sys.exit(2)'
                  destroy: {python} -c 'pass'
                  poll_interval: 0.05
                """
            )
        )
        result = _invoke(path, "deploy", "--env", "dev")
        assert result.exit_code == 1
        assert "Outcome: rolled_back" in result.output
        assert "Trigger: dev-NetworkStack" in result.output


class TestDestroyCommand:
    def test_destroy(self, config_file: Path):
        result = _invoke(config_file, "destroy", "--mock", "--yes")
        assert result.exit_code == 0
        assert "Destroyed 4 stacks" in result.output

    def test_confirmation_declined(self, config_file: Path):
        result = _invoke(config_file, "destroy", "--mock", input="n\n")
        assert result.exit_code == 1
        assert "Destroyed" not in result.output
        assert not (config_file.parent / ".state").exists()

    def test_destroy_json(self, config_file: Path):
        result = _invoke(config_file, "destroy", "--mock", "--json", "--stack", "dev-ComputeStack")
        assert result.exit_code == 0
        assert json.loads(result.output)["order"] == ["dev-ComputeStack"]


class TestHistoryCommand:
    def test_empty(self, config_file: Path):
        result = _invoke(config_file, "history")
        assert result.exit_code == 0
        assert "No runs recorded yet." in result.output

    def test_after_deploy(self, config_file: Path):
        _invoke(config_file, "deploy", "--mock")
        _invoke(config_file, "destroy", "--mock", "--yes")

        result = _invoke(config_file, "history")
        assert result.exit_code == 0
        assert "deploy" in result.output
        assert "destroy" in result.output

        entries = json.loads(_invoke(config_file, "history", "--json").output)
        assert [e["operation_type"] for e in entries] == ["deploy", "destroy"]
