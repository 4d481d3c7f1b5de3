"""
Provisioner base — the contract between the engine and provisioning backends.

The engine never creates infrastructure itself. For each stack it builds
a ProvisionContext and hands it to the provisioner registered for the
stack's kind, through the ProvisionerRegistry.

Provisioners signal failure by raising ProvisioningError. The registry
catches it and turns it into a failed Receipt, so the executor never
has to handle provisioner exceptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stackplane.core.engine.cancellation import CancellationToken
from stackplane.core.models.stack import HandleKind, StackKind


class ProvisionContext(BaseModel):
    """Everything a provisioner needs to materialize or tear down a stack."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    stack: str
    kind: StackKind
    environment: str = "dev"
    region: str = ""
    account: str | None = None

    config: dict[str, Any] = Field(default_factory=dict)
    bindings: dict[str, Any] = Field(default_factory=dict)
    exports: dict[str, HandleKind] = Field(default_factory=dict)  # declared, to be produced
    tags: dict[str, str] = Field(default_factory=dict)

    cancel_token: CancellationToken | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled


class Provisioner(ABC):
    """Abstract base class for provisioning backends.

    To create a new provisioner:
        1. Subclass Provisioner
        2. Implement name, kinds, is_available, materialize, teardown
        3. Register it in the ProvisionerRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The provisioner identifier (e.g., 'mock', 'command')."""

    @property
    def kinds(self) -> frozenset[StackKind]:
        """Stack kinds this provisioner handles. Defaults to all of them."""
        return frozenset(StackKind)

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether the backend tooling is reachable. Should never raise."""

    @abstractmethod
    def materialize(self, context: ProvisionContext) -> dict[str, Any]:
        """Create or update the stack and return its exports.

        Materializing an already-materialized stack with identical
        configuration must be a no-op that returns the same exports.

        Raises:
            ProvisioningError: If the backend failed.
        """

    @abstractmethod
    def teardown(self, context: ProvisionContext) -> None:
        """Delete every resource of the stack.

        Raises:
            ProvisioningError: If the backend failed.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
