"""Shared test doubles for the resource stores and the record store."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

import pytest

from workspace_operator.errors import (
    AlreadyExistsError,
    ConflictError,
    RecordExistsError,
    RecordNotFoundError,
    ResourceStoreError,
)
from workspace_operator.orchestration.models import (
    Phase,
    RecordMetadata,
    WorkspaceRequest,
    WorkspaceRequestSpec,
    WorkspaceRequestStatus,
)
from workspace_operator.orchestration.phases import PhaseContext
from workspace_operator.orchestration.stores import InstanceStatus, RoleBindingRequest, ServiceClass


class FakeNamespaceStore:
    def __init__(self, existing: Optional[Set[str]] = None) -> None:
        self.existing: Set[str] = set(existing or ())
        self.create_calls: List[str] = []
        self.error: Optional[Exception] = None

    def create(self, name: str, labels: Dict[str, str]) -> str:
        self.create_calls.append(name)
        if self.error is not None:
            raise self.error
        if name in self.existing:
            raise AlreadyExistsError("Namespace", name)
        self.existing.add(name)
        return name

    def get(self, name: str) -> Optional[str]:
        return name if name in self.existing else None


class FakeBindingStore:
    def __init__(self) -> None:
        self.bindings: Dict[str, RoleBindingRequest] = {}
        self.create_calls: List[str] = []
        self.error: Optional[Exception] = None

    def create(self, binding: RoleBindingRequest) -> str:
        self.create_calls.append(binding.name)
        if self.error is not None:
            raise self.error
        key = f"{binding.namespace}/{binding.name}"
        if key in self.bindings:
            raise AlreadyExistsError("RoleBinding", key)
        self.bindings[key] = binding
        return binding.name


class FakeCatalogStore:
    def __init__(self, external_names: Optional[List[str]] = None) -> None:
        self.classes: List[ServiceClass] = [
            ServiceClass(external_name=name, internal_id=f"class-{name}") for name in external_names or []
        ]
        self.instances: Dict[str, Dict[str, Any]] = {}
        self.ready: Set[str] = set()
        self.create_calls: List[str] = []
        self.fail_create: Set[str] = set()
        self.fail_status: Set[str] = set()
        self.list_error: Optional[Exception] = None

    def list_service_classes(self) -> List[ServiceClass]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.classes)

    def create_instance(
        self, namespace: str, name: str, service_class: ServiceClass, parameters: Dict[str, Any]
    ) -> str:
        self.create_calls.append(name)
        if service_class.external_name in self.fail_create:
            raise ResourceStoreError(f"ServiceInstance {name!r}: 500 Internal Server Error")
        if name in self.instances:
            raise AlreadyExistsError("ServiceInstance", name)
        self.instances[name] = {
            "namespace": namespace,
            "class": service_class.internal_id,
            "parameters": parameters,
        }
        return name

    def get_instance_status(self, namespace: str, instance_id: str) -> InstanceStatus:
        if instance_id in self.fail_status:
            raise ResourceStoreError(f"ServiceInstance {instance_id!r}: 503 Service Unavailable")
        return InstanceStatus(ready=instance_id in self.ready)

    def mark_all_ready(self) -> None:
        self.ready.update(self.instances)


class InMemoryRequestStore:
    """Record store double with the same versioning rules as the Redis store."""

    def __init__(self) -> None:
        self.records: Dict[str, WorkspaceRequest] = {}
        self.update_calls = 0
        self.error: Optional[Exception] = None

    def create(self, request: WorkspaceRequest) -> WorkspaceRequest:
        if request.name in self.records:
            raise RecordExistsError(request.name)
        stored = WorkspaceRequest(metadata=request.metadata, spec=request.spec).with_version(1)
        self.records[request.name] = stored
        return stored

    def get(self, name: str) -> Optional[WorkspaceRequest]:
        return self.records.get(name)

    def require(self, name: str) -> WorkspaceRequest:
        if name not in self.records:
            raise RecordNotFoundError(name)
        return self.records[name]

    def list(self) -> List[WorkspaceRequest]:
        return [self.records[name] for name in sorted(self.records)]

    def update_status(self, request: WorkspaceRequest) -> WorkspaceRequest:
        self.update_calls += 1
        if self.error is not None:
            raise self.error
        current = self.require(request.name)
        expected = request.metadata.resource_version
        if current.metadata.resource_version != expected:
            raise ConflictError(request.name, expected, current.metadata.resource_version)
        stored = current.model_copy(update={"status": request.status}).with_version(expected + 1)
        self.records[request.name] = stored
        return stored

    def delete(self, name: str) -> WorkspaceRequest:
        request = self.require(name)
        del self.records[name]
        return request


def make_request(
    name: str = "alice-dev",
    user_name: str = "alice",
    services: Optional[List[str]] = None,
    phase: Phase = Phase.NONE,
    namespace: str = "",
    provisioned: Optional[Dict[str, str]] = None,
    version: int = 1,
) -> WorkspaceRequest:
    return WorkspaceRequest(
        metadata=RecordMetadata(name=name, resource_version=version),
        spec=WorkspaceRequestSpec(
            user_name=user_name,
            required_services=["db", "cache"] if services is None else services,
        ),
        status=WorkspaceRequestStatus(
            phase=phase,
            namespace=namespace,
            provisioned_services=provisioned or {},
        ),
    )


@pytest.fixture
def namespaces() -> FakeNamespaceStore:
    return FakeNamespaceStore()


@pytest.fixture
def bindings() -> FakeBindingStore:
    return FakeBindingStore()


@pytest.fixture
def catalog() -> FakeCatalogStore:
    return FakeCatalogStore(["db", "cache", "queue"])


@pytest.fixture
def context(namespaces, bindings, catalog) -> PhaseContext:
    return PhaseContext(namespaces=namespaces, bindings=bindings, catalog=catalog)


@pytest.fixture
def request_store() -> InMemoryRequestStore:
    return InMemoryRequestStore()
