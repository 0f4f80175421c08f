"""Interfaces of the external resource stores the reconciler drives."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


@dataclass(frozen=True)
class ServiceClass:
    """A catalog-listed template for service instances."""

    external_name: str
    internal_id: str


@dataclass(frozen=True)
class InstanceStatus:
    """Readiness of a single service instance as reported by the catalog."""

    ready: bool
    failed: bool = False
    message: Optional[str] = None


@dataclass(frozen=True)
class RoleBindingRequest:
    """Grant of a cluster role to a user inside one namespace."""

    name: str
    namespace: str
    role: str
    user_name: str
    labels: Dict[str, str] = field(default_factory=dict)


class NamespaceStore(Protocol):
    def create(self, name: str, labels: Dict[str, str]) -> str:
        """Create the namespace and return its name.

        Raises ``AlreadyExistsError`` when it exists, ``ResourceStoreError`` otherwise.
        """

    def get(self, name: str) -> Optional[str]:
        """Return the namespace name if it exists."""


class BindingStore(Protocol):
    def create(self, binding: RoleBindingRequest) -> str:
        """Create the role binding and return its name."""


class ServiceCatalogStore(Protocol):
    def list_service_classes(self) -> List[ServiceClass]:
        ...

    def create_instance(
        self,
        namespace: str,
        name: str,
        service_class: ServiceClass,
        parameters: Dict[str, Any],
    ) -> str:
        """Create a service instance and return its identifier."""

    def get_instance_status(self, namespace: str, instance_id: str) -> InstanceStatus:
        ...


__all__ = [
    "ServiceClass",
    "InstanceStatus",
    "RoleBindingRequest",
    "NamespaceStore",
    "BindingStore",
    "ServiceCatalogStore",
]
