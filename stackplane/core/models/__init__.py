"""
Domain models — Pydantic types for the deployment core.

All models are re-exported here for convenient access:

    from stackplane.core.models import StackDefinition, Binding, EnvironmentConfig
"""

from stackplane.core.models.binding import Binding
from stackplane.core.models.config import (
    ComputeConfig,
    DatabaseConfig,
    EnvironmentConfig,
    EventApiConfig,
    NetworkConfig,
)
from stackplane.core.models.receipt import Receipt
from stackplane.core.models.run import (
    RunOutcome,
    RunReport,
    RunState,
    StackRecord,
    StackStatus,
)
from stackplane.core.models.stack import (
    BindingRequest,
    HandleKind,
    StackDefinition,
    StackKind,
)

__all__ = [
    # binding.py
    "Binding",
    # stack.py
    "BindingRequest",
    # config.py
    "ComputeConfig",
    "DatabaseConfig",
    "EnvironmentConfig",
    "EventApiConfig",
    "HandleKind",
    "NetworkConfig",
    # receipt.py
    "Receipt",
    # run.py
    "RunOutcome",
    "RunReport",
    "RunState",
    "StackDefinition",
    "StackKind",
    "StackRecord",
    "StackStatus",
]
