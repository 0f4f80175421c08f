"""Kubernetes API client construction and error translation."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import urllib3
from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException

from ...config import KubernetesConfig
from ...errors import AlreadyExistsError, ResourceStoreError

LOGGER = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


def build_api_client(settings: KubernetesConfig) -> client.ApiClient:
    """Load in-cluster or kubeconfig credentials into a dedicated ApiClient."""

    configuration = client.Configuration()
    if settings.in_cluster:
        k8s_config.load_incluster_config(client_configuration=configuration)
    else:
        k8s_config.load_kube_config(
            config_file=settings.kubeconfig,
            context=settings.context,
            client_configuration=configuration,
        )
    LOGGER.info("Kubernetes client configured", extra={"host": configuration.host, "in_cluster": settings.in_cluster})
    return client.ApiClient(configuration)


@contextmanager
def translate_api_errors(kind: str, name: str) -> Iterator[None]:
    """Map Kubernetes client failures onto the resource store error types."""

    try:
        yield
    except ApiException as exc:
        if exc.status == HTTP_CONFLICT:
            raise AlreadyExistsError(kind, name) from exc
        raise ResourceStoreError(f"{kind} {name!r}: {exc.status} {exc.reason}") from exc
    except urllib3.exceptions.HTTPError as exc:
        raise ResourceStoreError(f"{kind} {name!r}: {exc}") from exc


__all__ = ["build_api_client", "translate_api_errors", "HTTP_NOT_FOUND", "HTTP_CONFLICT"]
