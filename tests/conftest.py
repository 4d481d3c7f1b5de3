"""
Shared test fixtures and configuration.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from stackplane.adapters.mock import MockProvisioner
from stackplane.adapters.registry import ProvisionerRegistry
from stackplane.core.models.config import EnvironmentConfig
from stackplane.core.models.stack import BindingRequest, HandleKind, StackDefinition, StackKind


@pytest.fixture
def make_stack() -> Callable[..., StackDefinition]:
    """Factory for small stack definitions.

    ``bindings`` takes ``(param, stack, export, kind)`` tuples; every stack
    exports ``Out`` as a network handle unless ``exports`` says otherwise.
    """

    def _make(
        name: str,
        depends_on: list[str] | None = None,
        bindings: list[tuple[str, str, str, HandleKind]] | None = None,
        exports: dict[str, HandleKind] | None = None,
        kind: StackKind = StackKind.NETWORK,
    ) -> StackDefinition:
        return StackDefinition(
            name=name,
            kind=kind,
            depends_on=depends_on or [],
            bindings=[
                BindingRequest(param=p, stack=s, export=e, kind=k)
                for p, s, e, k in (bindings or [])
            ],
            exports={"Out": HandleKind.NETWORK} if exports is None else exports,
        )

    return _make


@pytest.fixture
def diamond(make_stack) -> list[StackDefinition]:
    """A ← B, A ← C, {B, C} ← D. D consumes B's output."""
    return [
        make_stack("D", depends_on=["C"], bindings=[("b_out", "B", "Out", HandleKind.NETWORK)]),
        make_stack("C", depends_on=["A"]),
        make_stack("B", bindings=[("a_out", "A", "Out", HandleKind.NETWORK)]),
        make_stack("A"),
    ]


@pytest.fixture
def bundle() -> EnvironmentConfig:
    return EnvironmentConfig(name="test", region="us-west-2", account="123456789012")


@pytest.fixture
def mock() -> MockProvisioner:
    return MockProvisioner()


@pytest.fixture
def registry(mock: MockProvisioner) -> ProvisionerRegistry:
    registry = ProvisionerRegistry()
    registry.register(mock)
    return registry


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """An empty stackplane.yml in a temporary project root."""
    path = tmp_path / "stackplane.yml"
    path.write_text("environments: {}\n")
    return path
