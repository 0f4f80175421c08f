"""FastAPI routes for submitting and inspecting workspace requests."""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field

from ..errors import RecordExistsError, RecordNotFoundError, ValidationError
from ..events.publisher import WorkspaceEventPublisher
from ..orchestration.codec import DNS_LABEL_PATTERN, normalize_spec, record_to_dict
from ..orchestration.models import RecordMetadata, WorkspaceRequest, WorkspaceRequestSpec
from ..services.record_store import WorkspaceRequestStore

LOGGER = logging.getLogger(__name__)

router = APIRouter()


class WorkspaceRequestCreate(BaseModel):
    """Body of a new workspace request."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=63, pattern=DNS_LABEL_PATTERN)
    user_name: str = Field(..., alias="userName")
    required_services: List[str] = Field(default_factory=list, alias="requiredServices")


def get_record_store(request: Request) -> WorkspaceRequestStore:
    store = getattr(request.app.state, "record_store", None)
    if store is None:
        raise RuntimeError("WorkspaceRequestStore dependency not configured")
    return store


def get_event_publisher(request: Request) -> WorkspaceEventPublisher:
    publisher = getattr(request.app.state, "workspace_events", None)
    if publisher is None:
        raise RuntimeError("WorkspaceEventPublisher dependency not configured")
    return publisher


def get_namespace_suffix(request: Request) -> str:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        return "-workspace"
    return settings.reconciler.namespace_suffix


@router.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


@router.post("/workspace-requests", status_code=status.HTTP_201_CREATED)
def create_workspace_request(
    body: WorkspaceRequestCreate,
    store: WorkspaceRequestStore = Depends(get_record_store),
    publisher: WorkspaceEventPublisher = Depends(get_event_publisher),
    namespace_suffix: str = Depends(get_namespace_suffix),
) -> dict:
    try:
        spec = normalize_spec(
            WorkspaceRequestSpec(user_name=body.user_name, required_services=body.required_services),
            namespace_suffix,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.problems) from exc
    try:
        stored = store.create(WorkspaceRequest(metadata=RecordMetadata(name=body.name), spec=spec))
    except RecordExistsError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    try:
        publisher.publish_updated(stored.name)
    except Exception:
        LOGGER.exception("Failed to announce new workspace request; resync will pick it up", extra={"request": stored.name})
    return record_to_dict(stored)


@router.get("/workspace-requests")
def list_workspace_requests(store: WorkspaceRequestStore = Depends(get_record_store)) -> list:
    return [record_to_dict(request) for request in store.list()]


@router.get("/workspace-requests/{name}")
def get_workspace_request(name: str, store: WorkspaceRequestStore = Depends(get_record_store)) -> dict:
    request = store.get(name)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workspace request not found")
    return record_to_dict(request)


@router.get("/workspace-requests/{name}/status")
def workspace_request_status(name: str, store: WorkspaceRequestStore = Depends(get_record_store)) -> dict:
    request = store.get(name)
    if request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workspace request not found")
    return record_to_dict(request)["status"]


@router.delete("/workspace-requests/{name}", status_code=status.HTTP_204_NO_CONTENT)
def delete_workspace_request(
    name: str,
    store: WorkspaceRequestStore = Depends(get_record_store),
    publisher: WorkspaceEventPublisher = Depends(get_event_publisher),
) -> Response:
    try:
        deleted = store.delete(name)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workspace request not found") from exc
    try:
        publisher.publish_deleted(deleted)
    except Exception:
        LOGGER.exception("Failed to announce workspace request deletion", extra={"request": name})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router", "WorkspaceRequestCreate"]
