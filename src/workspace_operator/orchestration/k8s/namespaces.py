"""Namespace store backed by the Kubernetes core API."""
from __future__ import annotations

from typing import Dict, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from .client import HTTP_NOT_FOUND, translate_api_errors


class KubernetesNamespaceStore:
    """Create and look up namespaces through ``CoreV1Api``."""

    def __init__(self, api_client: client.ApiClient, request_timeout: float = 30) -> None:
        self._api = client.CoreV1Api(api_client)
        self._timeout = request_timeout

    def create(self, name: str, labels: Dict[str, str]) -> str:
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name, labels=dict(labels)))
        with translate_api_errors("Namespace", name):
            namespace = self._api.create_namespace(body=body, _request_timeout=self._timeout)
        return namespace.metadata.name

    def get(self, name: str) -> Optional[str]:
        with translate_api_errors("Namespace", name):
            try:
                namespace = self._api.read_namespace(name=name, _request_timeout=self._timeout)
            except ApiException as exc:
                if exc.status == HTTP_NOT_FOUND:
                    return None
                raise
        return namespace.metadata.name


__all__ = ["KubernetesNamespaceStore"]
