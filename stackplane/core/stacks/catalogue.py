"""
Stack catalogue — the four stacks of an environment and how they connect.

    NetworkStack ──► DatabaseStack ──► ComputeStack
         │                               ▲
         ├───────── vpc_id ──────────────┘
         └──► ServerlessStack

Each definition carries its parameter group as the payload, so the
provisioning backend needs nothing beyond the definition and bindings.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from stackplane.core.models.config import EnvironmentConfig
from stackplane.core.models.stack import BindingRequest, HandleKind, StackDefinition, StackKind


def stack_name(environment: str, base: str) -> str:
    """Environment-scoped stack name, e.g. ``dev-NetworkStack``."""
    return f"{environment}-{base}"


def _payload(bundle: EnvironmentConfig, group: BaseModel, **extra: Any) -> dict[str, Any]:
    return {
        **group.model_dump(mode="json"),
        **extra,
        "region": bundle.region,
        "account": bundle.account,
        "tags": bundle.resource_tags(),
    }


def build_stack_definitions(bundle: EnvironmentConfig) -> list[StackDefinition]:
    """Build every stack definition for one environment."""
    network = stack_name(bundle.name, "NetworkStack")
    database = stack_name(bundle.name, "DatabaseStack")
    compute = stack_name(bundle.name, "ComputeStack")
    serverless = stack_name(bundle.name, "ServerlessStack")
    tags = bundle.resource_tags()

    return [
        StackDefinition(
            name=network,
            kind=StackKind.NETWORK,
            description="VPC with public, private and isolated subnets",
            exports={
                "VpcId": HandleKind.NETWORK,
                "PrivateSubnets": HandleKind.SUBNET,
            },
            config=_payload(bundle, bundle.network),
            tags=tags,
        ),
        StackDefinition(
            name=database,
            kind=StackKind.DATABASE,
            description="Aurora PostgreSQL cluster with managed credentials",
            bindings=[
                BindingRequest(param="vpc_id", stack=network, export="VpcId", kind=HandleKind.NETWORK),
                BindingRequest(
                    param="subnet_ids", stack=network, export="PrivateSubnets", kind=HandleKind.SUBNET
                ),
            ],
            exports={
                "ClusterEndpoint": HandleKind.DATABASE,
                "SecretArn": HandleKind.SECRET,
            },
            config=_payload(
                bundle,
                bundle.database,
                deletion_protection=bundle.database.deletion_protection,
            ),
            tags=tags,
        ),
        StackDefinition(
            name=compute,
            kind=StackKind.COMPUTE,
            description="Load-balanced container service with autoscaling",
            depends_on=[database],
            bindings=[
                BindingRequest(param="vpc_id", stack=network, export="VpcId", kind=HandleKind.NETWORK),
                BindingRequest(
                    param="database_endpoint",
                    stack=database,
                    export="ClusterEndpoint",
                    kind=HandleKind.DATABASE,
                ),
                BindingRequest(
                    param="database_secret", stack=database, export="SecretArn", kind=HandleKind.SECRET
                ),
            ],
            exports={
                "LoadBalancerDns": HandleKind.ENDPOINT,
                "ServiceUrl": HandleKind.ENDPOINT,
            },
            config=_payload(bundle, bundle.compute),
            tags=tags,
        ),
        StackDefinition(
            name=serverless,
            kind=StackKind.EVENT_API,
            description="Event-driven API: functions, table, queue and HTTP API",
            depends_on=[network],
            bindings=[
                BindingRequest(param="vpc_id", stack=network, export="VpcId", kind=HandleKind.NETWORK),
            ],
            exports={
                "ApiEndpoint": HandleKind.ENDPOINT,
                "TableName": HandleKind.TABLE,
            },
            config=_payload(bundle, bundle.event_api),
            tags=tags,
        ),
    ]
