"""
Config check use case — validate stackplane.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from stackplane.adapters.command import CommandProvisioner
from stackplane.adapters.registry import ProvisionerRegistry
from stackplane.core.config.loader import (
    ConfigError,
    apply_defaults,
    load_environments,
    load_provisioner_settings,
)
from stackplane.core.engine.graph import build_graph
from stackplane.core.engine.validation import validate_all
from stackplane.core.errors import StackplaneError
from stackplane.core.models.config import EnvironmentConfig
from stackplane.core.stacks.catalogue import build_stack_definitions
from stackplane.core.use_cases.plan import resolve_config_path


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config_path: Path | None = None
    environments: list[str] = field(default_factory=list)
    provisioner: str | None = None
    adapters: dict[str, dict] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "environments": self.environments,
            "provisioner": self.provisioner,
            "adapters": self.adapters,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate configuration and every environment's stack graph.

    Args:
        config_path: Optional explicit path to stackplane.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    config_path = resolve_config_path(config_path)
    result.config_path = config_path
    if config_path is None:
        result.warnings.append("No stackplane.yml found; using built-in environments.")

    # Load and validate
    try:
        environments = load_environments(config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.environments = sorted(environments)

    try:
        settings = load_provisioner_settings(config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        settings = None
    if settings is not None:
        result.provisioner = settings.deploy.split()[0] if settings.deploy.split() else None
        registry = ProvisionerRegistry()
        registry.register(CommandProvisioner(settings))
        result.adapters = registry.adapter_status()
        missing = sorted(kind for kind, info in result.adapters.items() if not info["available"])
        if missing:
            result.warnings.append(
                f"Provisioner command '{result.provisioner}' not found on PATH "
                f"(needed for: {', '.join(missing)})"
            )
    elif config_path is not None:
        result.warnings.append("No provisioner configured; only --mock deployments are possible.")

    for name in result.environments:
        try:
            bundle = apply_defaults(environments[name])
        except ConfigError as e:
            result.errors.append(str(e))
            continue
        try:
            build_graph(validate_all(build_stack_definitions(bundle)))
        except StackplaneError as e:
            result.errors.append(f"{name}: {e}")
        _check_bundle(bundle, result)

    result.valid = len(result.errors) == 0
    return result


def _check_bundle(bundle: EnvironmentConfig, result: ConfigCheckResult) -> None:
    name = bundle.name
    compute = bundle.compute
    if compute.min_capacity > compute.max_capacity:
        result.errors.append(
            f"{name}: compute min_capacity ({compute.min_capacity}) exceeds "
            f"max_capacity ({compute.max_capacity})"
        )
    elif not compute.min_capacity <= compute.desired_count <= compute.max_capacity:
        result.warnings.append(
            f"{name}: compute desired_count ({compute.desired_count}) is outside "
            f"[{compute.min_capacity}, {compute.max_capacity}]"
        )

    database = bundle.database
    if database.min_capacity > database.max_capacity:
        result.errors.append(
            f"{name}: database min_capacity ({database.min_capacity}) exceeds "
            f"max_capacity ({database.max_capacity})"
        )

    if bundle.network.nat_gateways > bundle.network.max_azs:
        result.warnings.append(
            f"{name}: {bundle.network.nat_gateways} NAT gateways for "
            f"{bundle.network.max_azs} availability zones"
        )
