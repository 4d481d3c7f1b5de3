"""
Deploy use case — the vertical slice from environment name to audited run.

    lookup bundle → build definitions → validate → graph
        → provisioner registry → executor → report → audit ledger
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from stackplane.adapters.command import CommandProvisioner
from stackplane.adapters.registry import ProvisionerRegistry
from stackplane.core.config.loader import ConfigError, load_provisioner_settings
from stackplane.core.engine.cancellation import CancellationToken
from stackplane.core.engine.executor import DeploymentExecutor, write_audit_entry
from stackplane.core.errors import StackplaneError
from stackplane.core.models.run import RunReport
from stackplane.core.persistence.audit import AuditWriter
from stackplane.core.use_cases.plan import load_graph, resolve_config_path

logger = logging.getLogger(__name__)


@dataclass
class DeployResult:
    """Result of a deployment run."""

    environment: str = ""
    config_path: Path | None = None
    report: RunReport | None = None
    audit_path: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.ok

    def to_dict(self) -> dict:
        result: dict = {"environment": self.environment}
        if self.error:
            result["error"] = self.error
            return result

        result["config_path"] = str(self.config_path) if self.config_path else None
        if self.report:
            result["report"] = self.report.to_dict()
        if self.audit_path:
            result["audit_path"] = str(self.audit_path)
        return result


def build_registry(config_path: Path | None, mock_mode: bool = False) -> ProvisionerRegistry:
    """Set up the provisioner registry for a run.

    Mock mode needs no configuration. Otherwise the ``provisioner:``
    section of stackplane.yml drives a CommandProvisioner for every kind.

    Raises:
        ConfigError: If no provisioner is configured and mock mode is off.
    """
    registry = ProvisionerRegistry(mock_mode=mock_mode)
    if mock_mode:
        return registry

    settings = load_provisioner_settings(config_path)
    if settings is None:
        raise ConfigError(
            "No provisioner configured: add a 'provisioner:' section to "
            "stackplane.yml or use --mock."
        )
    registry.register(CommandProvisioner(settings))
    return registry


def project_root_for(config_path: Path | None) -> Path:
    return config_path.parent.resolve() if config_path else Path.cwd()


def run_deployment(
    environment: str = "dev",
    config_path: Path | None = None,
    stacks: list[str] | None = None,
    mock_mode: bool = False,
    registry: ProvisionerRegistry | None = None,
    cancel_token: CancellationToken | None = None,
    audit: bool = True,
) -> DeployResult:
    """Deploy an environment's stacks in dependency order.

    Args:
        environment: Target environment name.
        config_path: Optional explicit path to stackplane.yml.
        stacks: Optional target stacks (their dependencies are added).
        mock_mode: Route every stack to the mock provisioner.
        registry: Optional pre-configured provisioner registry.
        cancel_token: Optional token for cooperative cancellation.
        audit: Write the run to the audit ledger.

    Returns:
        DeployResult. Configuration and graph errors set ``error`` and
        nothing is provisioned; runtime failures show in the report.
    """
    result = DeployResult(environment=environment)

    # ── Load and plan ────────────────────────────────────────────
    try:
        config_path = resolve_config_path(config_path)
        result.config_path = config_path
        bundle, graph = load_graph(environment, config_path, stacks)
        if registry is None:
            registry = build_registry(config_path, mock_mode=mock_mode)
    except StackplaneError as e:
        result.error = str(e)
        return result

    # ── Execute ──────────────────────────────────────────────────
    executor = DeploymentExecutor(registry, cancel_token=cancel_token)
    run = executor.run(graph, bundle)
    result.report = run.report()

    logger.info("Run %s finished: %s", run.run_id, result.report.outcome)

    # ── Write audit log ──────────────────────────────────────────
    if audit:
        writer = AuditWriter(project_root=project_root_for(config_path))
        write_audit_entry(result.report, writer, operation_type="deploy")
        result.audit_path = writer.path

    return result
