"""
Built-in environment profiles.

Used when no stackplane.yml is present, and as the base that file
entries may extend.
"""

from __future__ import annotations

from stackplane.core.models.config import (
    ComputeConfig,
    DatabaseConfig,
    EnvironmentConfig,
    EventApiConfig,
    NetworkConfig,
)

BUILTIN_ENVIRONMENTS: dict[str, EnvironmentConfig] = {
    "dev": EnvironmentConfig(
        name="dev",
        region="us-west-2",
        network=NetworkConfig(max_azs=2, nat_gateways=1, enable_flow_logs=False),
        compute=ComputeConfig(
            desired_count=1,
            cpu=256,
            memory=512,
            min_capacity=1,
            max_capacity=4,
            use_fargate_spot=True,
        ),
        database=DatabaseConfig(
            serverless=True,
            min_capacity=0.5,
            max_capacity=4,
            multi_az=False,
            backup_retention=7,
        ),
        event_api=EventApiConfig(memory_size=256, timeout=30),
    ),
    "staging": EnvironmentConfig(
        name="staging",
        region="us-west-2",
        network=NetworkConfig(max_azs=2, nat_gateways=1, enable_flow_logs=True),
        compute=ComputeConfig(
            desired_count=2,
            cpu=512,
            memory=1024,
            min_capacity=2,
            max_capacity=8,
            use_fargate_spot=True,
        ),
        database=DatabaseConfig(
            serverless=True,
            min_capacity=1,
            max_capacity=8,
            multi_az=False,
            backup_retention=14,
        ),
        event_api=EventApiConfig(memory_size=512, timeout=30),
    ),
    "prod": EnvironmentConfig(
        name="prod",
        region="us-east-1",
        network=NetworkConfig(max_azs=3, nat_gateways=3, enable_flow_logs=True),
        compute=ComputeConfig(
            desired_count=3,
            cpu=1024,
            memory=2048,
            min_capacity=3,
            max_capacity=20,
            use_fargate_spot=False,
        ),
        database=DatabaseConfig(
            serverless=True,
            min_capacity=2,
            max_capacity=64,
            multi_az=True,
            backup_retention=35,
        ),
        event_api=EventApiConfig(memory_size=1024, timeout=30, reserved_concurrency=100),
    ),
}
