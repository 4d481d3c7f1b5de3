"""
Environment configuration — the per-environment parameter groups.

An EnvironmentConfig is the configuration bundle for one environment:
one parameter group per infrastructure layer plus account, region and
tags. It is looked up by environment name and treated as read-only by
everything downstream.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class NetworkConfig(BaseModel):
    """VPC layout."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_azs: int = Field(default=2, ge=1)
    nat_gateways: int = Field(default=1, ge=0)
    enable_flow_logs: bool = False


class ComputeConfig(BaseModel):
    """Container service sizing and autoscaling bounds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    desired_count: int = Field(default=1, ge=0)
    cpu: int = 256
    memory: int = 512
    min_capacity: int = Field(default=1, ge=0)
    max_capacity: int = Field(default=4, ge=1)
    use_fargate_spot: bool = True


class DatabaseConfig(BaseModel):
    """Database cluster settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    instance_type: str | None = None
    serverless: bool = True
    min_capacity: float = 0.5
    max_capacity: float = 4
    multi_az: bool = False
    backup_retention: int = Field(default=7, ge=1)

    @property
    def deletion_protection(self) -> bool:
        """Clusters that keep backups longer than a week are protected."""
        return self.backup_retention > 7


class EventApiConfig(BaseModel):
    """Function sizing for the event-driven API layer."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    memory_size: int = 256
    timeout: int = 30
    reserved_concurrency: int | None = None


class EnvironmentConfig(BaseModel):
    """The configuration bundle for one environment."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    account: str | None = None
    region: str = ""
    project: str = "aws-cdk-patterns"

    network: NetworkConfig = Field(default_factory=NetworkConfig)
    compute: ComputeConfig = Field(default_factory=ComputeConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    event_api: EventApiConfig = Field(default_factory=EventApiConfig)

    tags: dict[str, str] = Field(default_factory=dict)

    def resource_tags(self) -> dict[str, str]:
        """Tags applied to every stack: environment and project, plus custom tags."""
        return {"Environment": self.name, "Project": self.project, **self.tags}
