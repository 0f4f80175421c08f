"""Error taxonomy for workspace request reconciliation."""
from __future__ import annotations

from typing import Iterable, List, Optional


class WorkspaceOperatorError(Exception):
    """Base class for every error raised by the workspace operator."""


# ----------------------------------------------------------------------
# Resource store errors (raised by namespace/binding/catalog clients)
# ----------------------------------------------------------------------
class ResourceStoreError(WorkspaceOperatorError):
    """An external resource store call failed."""


class AlreadyExistsError(ResourceStoreError):
    """The resource being created already exists."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} {name!r} already exists")


# ----------------------------------------------------------------------
# Phase errors
# ----------------------------------------------------------------------
class ValidationError(WorkspaceOperatorError):
    """The request spec is invalid and needs client correction."""

    def __init__(self, problems: Iterable[str]) -> None:
        self.problems: List[str] = list(problems)
        super().__init__("invalid workspace request: " + "; ".join(self.problems))


class ProvisioningError(WorkspaceOperatorError):
    """Creating an external resource failed for a reason other than a duplicate."""


class CatalogResolutionError(WorkspaceOperatorError):
    """Requested services are missing from, or ambiguous in, the service catalog."""

    def __init__(self, missing: Iterable[str] = (), ambiguous: Iterable[str] = ()) -> None:
        self.missing: List[str] = sorted(missing)
        self.ambiguous: List[str] = sorted(ambiguous)
        parts = []
        if self.missing:
            parts.append("no catalog class for " + ", ".join(self.missing))
        if self.ambiguous:
            parts.append("multiple catalog classes for " + ", ".join(self.ambiguous))
        super().__init__("unable to resolve required services: " + "; ".join(parts))

    @property
    def services(self) -> List[str]:
        return sorted(set(self.missing) | set(self.ambiguous))


class ReadinessQueryError(WorkspaceOperatorError):
    """Querying a service instance status failed; the check should be retried."""


class ReconcileCancelled(WorkspaceOperatorError):
    """The reconciliation pass was aborted by a cancellation signal."""


class InvariantViolation(WorkspaceOperatorError):
    """A phase executor produced a record that breaks a status invariant."""


# ----------------------------------------------------------------------
# Persistence errors
# ----------------------------------------------------------------------
class PersistenceError(WorkspaceOperatorError):
    """Committing a workspace request to the record store failed."""


class ConflictError(PersistenceError):
    """The stored record changed since it was read."""

    def __init__(self, name: str, expected: int, actual: Optional[int]) -> None:
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"workspace request {name!r} version conflict: expected {expected}, found {actual}"
        )


class RecordNotFoundError(PersistenceError):
    """No workspace request is stored under the given name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"workspace request {name!r} not found")


class RecordExistsError(PersistenceError):
    """A workspace request with the given name is already stored."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"workspace request {name!r} already exists")


class RecordDecodeError(PersistenceError):
    """A stored or received workspace request payload could not be decoded."""


# ----------------------------------------------------------------------
# Reconciler wrapper
# ----------------------------------------------------------------------
class ReconcileError(WorkspaceOperatorError):
    """A reconciliation pass failed; carries the phase and record it failed in."""

    def __init__(self, record_name: str, phase: str, cause: Exception) -> None:
        self.record_name = record_name
        self.phase = phase
        self.cause = cause
        super().__init__(f"phase {phase or '<initial>'!r} failed for {record_name!r}: {cause}")


__all__ = [
    "WorkspaceOperatorError",
    "ResourceStoreError",
    "AlreadyExistsError",
    "ValidationError",
    "ProvisioningError",
    "CatalogResolutionError",
    "ReadinessQueryError",
    "ReconcileCancelled",
    "InvariantViolation",
    "PersistenceError",
    "ConflictError",
    "RecordNotFoundError",
    "RecordExistsError",
    "RecordDecodeError",
    "ReconcileError",
]
