"""Application configuration module."""
from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RabbitMQConfig(BaseModel):
    """Configuration options for RabbitMQ connections."""

    url: str = Field(..., description="AMQP URL for the RabbitMQ broker")
    queue: str = Field("workspace-operator", description="Queue name to consume workspace request events from")
    exchange: str = Field("workspace.events", description="Topic exchange carrying workspace request events")
    prefetch_count: int = Field(5, ge=1, le=50, description="Consumer prefetch count")


class RedisConfig(BaseModel):
    """Configuration for the Redis connection holding workspace request records."""

    url: str = Field(..., description="Redis connection URL")
    decode_responses: bool = Field(True, description="Decode responses to str instead of bytes")
    key_prefix: str = Field("workspace-operator", description="Prefix for every record key")


class KubernetesConfig(BaseModel):
    """How to reach the cluster that workspaces are provisioned into."""

    in_cluster: bool = Field(True, description="Use the pod service account instead of a kubeconfig")
    kubeconfig: Optional[str] = Field(None, description="Path to a kubeconfig file when not in cluster")
    context: Optional[str] = Field(None, description="Kubeconfig context to use")
    request_timeout_seconds: float = Field(30, gt=0, description="Deadline for each Kubernetes API call")
    service_catalog_group: str = Field("servicecatalog.k8s.io", description="Service catalog API group")
    service_catalog_version: str = Field("v1beta1", description="Service catalog API version")


class ReconcilerConfig(BaseModel):
    """Policy applied while provisioning a workspace."""

    resync_period_seconds: float = Field(
        60, gt=0, description="Interval at which every unfinished request is reconciled again"
    )
    user_roles: List[str] = Field(
        default_factory=lambda: ["edit"],
        description="Cluster roles granted to the user in the workspace namespace",
    )
    namespace_suffix: str = Field("-workspace", description="Appended to the user name to form the namespace")
    managed_label: str = Field(
        "workspace-operator/managed", description="Label set on every resource the operator creates"
    )

    @field_validator("namespace_suffix")
    def _normalize_namespace_suffix(cls, value: str) -> str:
        return value.replace(" ", "-").lower()


class LoggingConfig(BaseModel):
    """Simple logging configuration."""

    level: str = Field("INFO", description="Application log level")


class AppConfig(BaseSettings):
    """Top-level application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="WSO_", env_nested_delimiter="__", case_sensitive=False
    )

    rabbitmq: RabbitMQConfig
    redis: RedisConfig
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api_prefix: str = Field("/api/v1", description="Base prefix for FastAPI routes")
    service_name: str = Field("workspace-operator", description="Service identifier")
    event_bindings: List[str] = Field(
        default_factory=lambda: [
            "workspace.request.updated",
            "workspace.request.deleted",
        ],
        description="List of event routing keys the service will subscribe to.",
    )


@lru_cache
def get_settings() -> AppConfig:
    """Return a cached instance of the application settings."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "RabbitMQConfig",
    "RedisConfig",
    "KubernetesConfig",
    "ReconcilerConfig",
    "LoggingConfig",
    "get_settings",
]
