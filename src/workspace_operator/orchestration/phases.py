"""Phase executors: one status transition per provisioning phase.

Each executor receives the current request and a ``PhaseContext`` holding the
resource stores, performs that phase's external side effects and returns the
next request value. Executors never modify their input: on failure they
raise, and the caller keeps the request it already had.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import (
    AlreadyExistsError,
    CatalogResolutionError,
    ProvisioningError,
    ReconcileCancelled,
    ResourceStoreError,
)
from .codec import (
    DEFAULT_NAMESPACE_SUFFIX,
    binding_name,
    instance_name,
    namespace_name,
    normalize_spec,
    required_services,
)
from .models import Phase, WorkspaceRequest
from .readiness import evaluate_readiness
from .stores import (
    BindingStore,
    NamespaceStore,
    RoleBindingRequest,
    ServiceCatalogStore,
    ServiceClass,
)

LOGGER = logging.getLogger(__name__)

MANAGED_LABEL = "workspace-operator/managed"
REQUEST_LABEL = "workspace-operator/request"


@dataclass(frozen=True)
class PhaseContext:
    """Collaborators and policy shared by every phase executor."""

    namespaces: NamespaceStore
    bindings: BindingStore
    catalog: ServiceCatalogStore
    user_roles: Tuple[str, ...] = ("edit",)
    namespace_suffix: str = DEFAULT_NAMESPACE_SUFFIX
    managed_label: str = MANAGED_LABEL
    cancel_event: Optional[threading.Event] = field(default=None, compare=False)

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ReconcileCancelled("reconciliation cancelled before next external call")

    def labels_for(self, request: WorkspaceRequest) -> Dict[str, str]:
        return {self.managed_label: "true", REQUEST_LABEL: request.name}


PhaseExecutor = Callable[[WorkspaceRequest, PhaseContext], WorkspaceRequest]


def initialise(request: WorkspaceRequest, context: PhaseContext) -> WorkspaceRequest:
    normalize_spec(request.spec, context.namespace_suffix)
    return request.with_status(
        phase=Phase.PROVISION_NAMESPACE,
        ready=False,
        namespace="",
        provisioned_services={},
    )


def provision_namespace(request: WorkspaceRequest, context: PhaseContext) -> WorkspaceRequest:
    """Create the user's namespace; an existing namespace counts as created."""

    name = namespace_name(request.spec.user_name, context.namespace_suffix)
    context.check_cancelled()
    try:
        name = context.namespaces.create(name, context.labels_for(request))
        LOGGER.info("Created workspace namespace", extra={"request": request.name, "namespace": name})
    except AlreadyExistsError:
        LOGGER.info("Workspace namespace already exists", extra={"request": request.name, "namespace": name})
    except ResourceStoreError as exc:
        raise ProvisioningError(f"failed to create workspace namespace {name!r}") from exc
    return request.with_status(phase=Phase.ROLE_BINDINGS, namespace=name)


def create_role_bindings(request: WorkspaceRequest, context: PhaseContext) -> WorkspaceRequest:
    """Grant the user each configured role inside the workspace namespace.

    Binding names derive from the request name and role, so re-running the
    phase after a lost status update finds the bindings already present.
    """

    for role in context.user_roles:
        binding = RoleBindingRequest(
            name=binding_name(request.name, role),
            namespace=request.status.namespace,
            role=role,
            user_name=request.spec.user_name.strip(),
            labels=context.labels_for(request),
        )
        context.check_cancelled()
        try:
            context.bindings.create(binding)
            LOGGER.info(
                "Created user role binding",
                extra={"request": request.name, "role": role, "binding": binding.name},
            )
        except AlreadyExistsError:
            LOGGER.debug("Role binding already exists", extra={"request": request.name, "binding": binding.name})
        except ResourceStoreError as exc:
            raise ProvisioningError(f"failed to create user {role} role binding") from exc
    return request.with_status(phase=Phase.PROVISION_SERVICES)


def resolve_service_classes(
    requested: List[str], service_classes: List[ServiceClass]
) -> Dict[str, ServiceClass]:
    """Match each requested name to exactly one catalog class by external name."""

    matches: Dict[str, List[ServiceClass]] = {name: [] for name in requested}
    for service_class in service_classes:
        if service_class.external_name in matches:
            matches[service_class.external_name].append(service_class)
    missing = [name for name, found in matches.items() if not found]
    ambiguous = [name for name, found in matches.items() if len(found) > 1]
    if missing or ambiguous:
        raise CatalogResolutionError(missing=missing, ambiguous=ambiguous)
    return {name: found[0] for name, found in matches.items()}


def provision_services(request: WorkspaceRequest, context: PhaseContext) -> WorkspaceRequest:
    requested = required_services(request.spec)
    LOGGER.debug("Provisioning services", extra={"request": request.name, "required": requested})
    context.check_cancelled()
    try:
        service_classes = context.catalog.list_service_classes()
    except ResourceStoreError as exc:
        raise ProvisioningError("failed to list service classes") from exc
    resolved = resolve_service_classes(requested, service_classes)

    # TODO: accept per-service parameters on WorkspaceRequestSpec once catalog plans need them.
    parameters: Dict[str, str] = {}
    provisioned = dict(request.status.provisioned_services)
    namespace = request.status.namespace
    for service_name in requested:
        if service_name in provisioned:
            continue
        service_class = resolved[service_name]
        target = instance_name(request.name, service_class.external_name)
        context.check_cancelled()
        try:
            provisioned[service_name] = context.catalog.create_instance(
                namespace, target, service_class, dict(parameters)
            )
            LOGGER.info(
                "Created service instance",
                extra={"request": request.name, "service": service_name, "instance": provisioned[service_name]},
            )
        except AlreadyExistsError:
            provisioned[service_name] = target
            LOGGER.info(
                "Service instance already exists",
                extra={"request": request.name, "service": service_name, "instance": target},
            )
        except ResourceStoreError as exc:
            raise ProvisioningError(f"failed to create service instance for {service_name}") from exc
    return request.with_status(phase=Phase.PROVISIONED_SERVICES, provisioned_services=provisioned)


def check_services_ready(request: WorkspaceRequest, context: PhaseContext) -> WorkspaceRequest:
    """Complete the request once every provisioned instance reports ready."""

    report = evaluate_readiness(
        context.catalog,
        request.status.namespace,
        request.status.provisioned_services,
        before_call=context.check_cancelled,
    )
    if not report.all_ready:
        LOGGER.debug("Services not ready yet", extra={"request": request.name, "pending": report.pending})
        return request
    LOGGER.info("All services ready", extra={"request": request.name})
    return request.with_status(phase=Phase.COMPLETE, ready=True)


PHASE_EXECUTORS: Dict[Phase, PhaseExecutor] = {
    Phase.NONE: initialise,
    Phase.PROVISION_NAMESPACE: provision_namespace,
    Phase.ROLE_BINDINGS: create_role_bindings,
    Phase.PROVISION_SERVICES: provision_services,
    Phase.PROVISIONED_SERVICES: check_services_ready,
}


__all__ = [
    "PhaseContext",
    "PhaseExecutor",
    "PHASE_EXECUTORS",
    "MANAGED_LABEL",
    "REQUEST_LABEL",
    "initialise",
    "provision_namespace",
    "create_role_bindings",
    "resolve_service_classes",
    "provision_services",
    "check_services_ready",
]
