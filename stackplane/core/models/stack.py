"""
Stack model — a named, independently materializable unit of infrastructure.

A StackDefinition is a stateless description: what the stack needs from
other stacks, what it hands out, and the opaque configuration payload
the provisioning backend turns into real resources. Definitions are built
once per run from the environment configuration and never mutated.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StackKind(StrEnum):
    """Infrastructure layer a stack belongs to; selects its provisioner."""

    NETWORK = "network"
    DATABASE = "database"
    COMPUTE = "compute"
    EVENT_API = "event-api"


class HandleKind(StrEnum):
    """Semantic type tag of an exported handle."""

    NETWORK = "network-handle"
    SUBNET = "subnet-handle"
    DATABASE = "database-handle"
    SECRET = "secret-handle"
    ENDPOINT = "endpoint-handle"
    TABLE = "table-handle"


class BindingRequest(BaseModel):
    """A handle a stack consumes from an upstream stack.

    ``param`` is the name under which the resolved value is handed to the
    provisioner; ``stack``/``export`` identify the binding; ``kind`` is
    the type the consumer expects.
    """

    model_config = ConfigDict(frozen=True)

    param: str
    stack: str
    export: str
    kind: HandleKind


class StackDefinition(BaseModel):
    """Declarative description of one stack in a deployment run."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: StackKind
    description: str = ""

    # Ordering-only dependencies
    depends_on: tuple[str, ...] = ()

    # Handles consumed from upstream stacks (each implies a dependency)
    bindings: tuple[BindingRequest, ...] = ()

    # Handles produced by this stack: export name → kind
    exports: dict[str, HandleKind] = Field(default_factory=dict)

    # Opaque to the core
    config: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, str] = Field(default_factory=dict)

    @property
    def dependencies(self) -> list[str]:
        """Every stack that must be materialized first, in declaration order.

        Union of ``depends_on`` and the owners of consumed bindings,
        without duplicates.
        """
        seen: list[str] = []
        for name in [*self.depends_on, *(b.stack for b in self.bindings)]:
            if name not in seen:
                seen.append(name)
        return seen

    def get_binding(self, stack: str, export: str) -> BindingRequest | None:
        """Look up the binding request for an upstream export."""
        for request in self.bindings:
            if request.stack == stack and request.export == export:
                return request
        return None
