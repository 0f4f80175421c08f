"""Domain models for workspace requests and their reconciliation status."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Phase(str, Enum):
    """Provisioning phases, in the only order a request may move through them."""

    NONE = ""
    PROVISION_NAMESPACE = "ProvisionNamespace"
    ROLE_BINDINGS = "RoleBindings"
    PROVISION_SERVICES = "ProvisionServices"
    PROVISIONED_SERVICES = "ProvisionedServices"
    COMPLETE = "Complete"

    @property
    def order(self) -> int:
        return PHASE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is Phase.COMPLETE


PHASE_ORDER = (
    Phase.NONE,
    Phase.PROVISION_NAMESPACE,
    Phase.ROLE_BINDINGS,
    Phase.PROVISION_SERVICES,
    Phase.PROVISIONED_SERVICES,
    Phase.COMPLETE,
)


class RecordMetadata(BaseModel):
    """Identity and version token of a stored workspace request."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    resource_version: int = Field(0, alias="resourceVersion")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class WorkspaceRequestSpec(BaseModel):
    """Client supplied desired state."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_name: str = Field("", alias="userName")
    required_services: List[str] = Field(default_factory=list, alias="requiredServices")


class WorkspaceRequestStatus(BaseModel):
    """Observed state, written only by the reconciler."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    phase: Phase = Phase.NONE
    ready: bool = False
    namespace: str = Field("", alias="namespaceName")
    provisioned_services: Dict[str, str] = Field(default_factory=dict, alias="provisionedServices")


class WorkspaceRequest(BaseModel):
    """Declarative record describing a user's desired workspace."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    metadata: RecordMetadata
    spec: WorkspaceRequestSpec = Field(default_factory=WorkspaceRequestSpec)
    status: WorkspaceRequestStatus = Field(default_factory=WorkspaceRequestStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def phase(self) -> Phase:
        return self.status.phase

    def with_status(self, **changes: Any) -> "WorkspaceRequest":
        """Return a copy of the request with the given status fields replaced.

        The receiver is never modified; mutable status members are deep copied
        so later changes to the copy cannot leak back into the original.
        """

        status = self.status.model_copy(update=changes, deep=True)
        return self.model_copy(update={"status": status}, deep=True)

    def with_version(self, resource_version: int) -> "WorkspaceRequest":
        metadata = self.metadata.model_copy(update={"resource_version": resource_version})
        return self.model_copy(update={"metadata": metadata})


__all__ = [
    "Phase",
    "PHASE_ORDER",
    "RecordMetadata",
    "WorkspaceRequestSpec",
    "WorkspaceRequestStatus",
    "WorkspaceRequest",
]
