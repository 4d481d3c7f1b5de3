"""
Plan use case — show what a deployment would do without doing it.

Loads the environment, builds its stack definitions, validates them and
computes the deployment order. Also hosts the loading steps shared by
deploy and destroy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from stackplane.core.config.loader import find_config_file, lookup
from stackplane.core.engine.graph import DeploymentGraph, build_graph, select_stacks
from stackplane.core.engine.validation import validate_all
from stackplane.core.errors import StackplaneError
from stackplane.core.models.config import EnvironmentConfig
from stackplane.core.stacks.catalogue import build_stack_definitions

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    """Result of planning a deployment."""

    environment: str = ""
    config_path: Path | None = None
    bundle: EnvironmentConfig | None = None
    graph: DeploymentGraph | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {"environment": self.environment}
        if self.error:
            result["error"] = self.error
            return result

        graph = self.graph
        assert graph is not None
        result["config_path"] = str(self.config_path) if self.config_path else None
        result["region"] = self.bundle.region if self.bundle else None
        result["order"] = list(graph.order)
        result["levels"] = graph.levels()
        result["edges"] = [{"from": e.from_stack, "to": e.to_stack} for e in graph.edges]
        result["stacks"] = [
            {
                "name": name,
                "kind": str(graph.get(name).kind),
                "depends_on": graph.dependencies_of(name),
                "bindings": [
                    {
                        "param": b.param,
                        "source": f"{b.stack}.{b.export}",
                        "kind": str(b.kind),
                    }
                    for b in graph.get(name).bindings
                ],
                "exports": {k: str(v) for k, v in graph.get(name).exports.items()},
            }
            for name in graph.order
        ]
        return result


def resolve_config_path(config_path: Path | None) -> Path | None:
    """Explicit path if given, otherwise the nearest stackplane.yml (or None)."""
    if config_path is not None:
        return config_path
    return find_config_file()


def load_graph(
    environment: str,
    config_path: Path | None,
    stacks: list[str] | None = None,
) -> tuple[EnvironmentConfig, DeploymentGraph]:
    """Look up the environment and build its validated deployment graph.

    Raises:
        StackplaneError: On configuration, validation or graph errors.
    """
    bundle = lookup(environment, config_path)
    definitions = validate_all(build_stack_definitions(bundle))
    graph = build_graph(select_stacks(definitions, stacks))
    logger.debug("Planned %s: %s", environment, " → ".join(graph.order))
    return bundle, graph


def plan_deployment(
    environment: str = "dev",
    config_path: Path | None = None,
    stacks: list[str] | None = None,
) -> PlanResult:
    """Compute the deployment plan for an environment.

    Args:
        environment: Target environment name.
        config_path: Optional explicit path to stackplane.yml.
        stacks: Optional target stacks (their dependencies are added).

    Returns:
        PlanResult with the graph, or ``error`` set.
    """
    result = PlanResult(environment=environment)
    try:
        result.config_path = resolve_config_path(config_path)
        result.bundle, result.graph = load_graph(environment, result.config_path, stacks)
    except StackplaneError as e:
        result.error = str(e)
    return result
