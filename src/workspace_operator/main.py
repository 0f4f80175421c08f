"""Application entrypoint for the Workspace Operator."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis
from fastapi import FastAPI
from kubernetes import client

from .api.routes import router as api_router
from .config import AppConfig, get_settings
from .events.consumer import EventConsumer
from .events.publisher import AuditEventPublisher, RabbitMQPublisher, WorkspaceEventPublisher
from .events.resync import ResyncLoop
from .orchestration.controller import WorkspaceController
from .orchestration.k8s.bindings import KubernetesBindingStore
from .orchestration.k8s.client import build_api_client
from .orchestration.k8s.namespaces import KubernetesNamespaceStore
from .orchestration.k8s.service_catalog import KubernetesServiceCatalogStore
from .orchestration.phases import PhaseContext
from .orchestration.reconciler import Reconciler
from .services.record_store import WorkspaceRequestStore

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: AppConfig = app.state.settings
    event_consumer: EventConsumer = app.state.event_consumer
    resync_loop: ResyncLoop = app.state.resync_loop
    controller: WorkspaceController = app.state.controller
    LOGGER.info("Starting Workspace Operator", extra={"service": settings.service_name})
    event_consumer.start()
    resync_loop.start()
    yield
    LOGGER.info("Shutting down Workspace Operator")
    controller.stop()
    resync_loop.stop()
    event_consumer.stop()
    app.state.redis.close()
    app.state.kubernetes.close()


def build_reconciler(
    settings: AppConfig, api_client: client.ApiClient, record_store: WorkspaceRequestStore
) -> Reconciler:
    """Wire the Kubernetes-backed resource stores into a reconciler."""

    timeout = settings.kubernetes.request_timeout_seconds
    reconciler_settings = settings.reconciler
    context = PhaseContext(
        namespaces=KubernetesNamespaceStore(api_client, request_timeout=timeout),
        bindings=KubernetesBindingStore(api_client, request_timeout=timeout),
        catalog=KubernetesServiceCatalogStore(
            api_client,
            group=settings.kubernetes.service_catalog_group,
            version=settings.kubernetes.service_catalog_version,
            request_timeout=timeout,
            labels={reconciler_settings.managed_label: "true"},
        ),
        user_roles=tuple(reconciler_settings.user_roles),
        namespace_suffix=reconciler_settings.namespace_suffix,
        managed_label=reconciler_settings.managed_label,
    )
    return Reconciler(context, record_store)


def create_app(settings: Optional[AppConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or get_settings()
    logging.basicConfig(level=settings.logging.level, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    redis_client = redis.from_url(settings.redis.url, decode_responses=settings.redis.decode_responses)
    record_store = WorkspaceRequestStore(redis_client, key_prefix=settings.redis.key_prefix)
    api_client = build_api_client(settings.kubernetes)
    reconciler = build_reconciler(settings, api_client, record_store)

    event_publisher = RabbitMQPublisher(settings)
    workspace_events = WorkspaceEventPublisher(event_publisher)
    audit_publisher = AuditEventPublisher(event_publisher)
    controller = WorkspaceController(record_store, reconciler, workspace_events, audit_publisher)
    event_consumer = EventConsumer(settings, controller.handle_event)
    resync_loop = ResyncLoop(controller.resync, settings.reconciler.resync_period_seconds)

    app = FastAPI(
        title="Workspace Operator",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(api_router, prefix=settings.api_prefix)

    app.state.settings = settings
    app.state.redis = redis_client
    app.state.kubernetes = api_client
    app.state.record_store = record_store
    app.state.reconciler = reconciler
    app.state.controller = controller
    app.state.workspace_events = workspace_events
    app.state.audit_publisher = audit_publisher
    app.state.event_consumer = event_consumer
    app.state.resync_loop = resync_loop

    return app


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("workspace_operator.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=False)
