"""Adapters — provisioning backends for the deployment engine.

Public re-exports for convenient access.
"""

from stackplane.adapters.base import ProvisionContext, Provisioner
from stackplane.adapters.mock import MockProvisioner
from stackplane.adapters.registry import ProvisionerRegistry

__all__ = [
    "MockProvisioner",
    "ProvisionContext",
    "Provisioner",
    "ProvisionerRegistry",
]
