"""Service catalog store backed by ``servicecatalog.k8s.io`` custom resources."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from kubernetes import client

from ..readiness import status_from_conditions
from ..stores import InstanceStatus, ServiceClass
from .client import translate_api_errors

LOGGER = logging.getLogger(__name__)

SERVICE_CLASS_PLURAL = "clusterserviceclasses"
SERVICE_INSTANCE_PLURAL = "serviceinstances"


class KubernetesServiceCatalogStore:
    """List service classes and manage service instances via ``CustomObjectsApi``."""

    def __init__(
        self,
        api_client: client.ApiClient,
        group: str = "servicecatalog.k8s.io",
        version: str = "v1beta1",
        request_timeout: float = 30,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        self._api = client.CustomObjectsApi(api_client)
        self._group = group
        self._version = version
        self._timeout = request_timeout
        self._labels = dict(labels or {})

    def list_service_classes(self) -> List[ServiceClass]:
        with translate_api_errors("ClusterServiceClass", "*"):
            response = self._api.list_cluster_custom_object(
                group=self._group,
                version=self._version,
                plural=SERVICE_CLASS_PLURAL,
                _request_timeout=self._timeout,
            )
        classes = []
        for item in response.get("items", []):
            external_name = (item.get("spec") or {}).get("externalName")
            if not external_name:
                continue
            classes.append(ServiceClass(external_name=external_name, internal_id=item["metadata"]["name"]))
        LOGGER.debug("Listed service classes", extra={"count": len(classes)})
        return classes

    def build_instance(
        self,
        namespace: str,
        name: str,
        service_class: ServiceClass,
        parameters: Dict[str, Any],
    ) -> Dict[str, Any]:
        return {
            "apiVersion": f"{self._group}/{self._version}",
            "kind": "ServiceInstance",
            "metadata": {"name": name, "namespace": namespace, "labels": dict(self._labels)},
            "spec": {
                "clusterServiceClassExternalName": service_class.external_name,
                "clusterServiceClassRef": {"name": service_class.internal_id},
                "parameters": parameters,
            },
        }

    def create_instance(
        self,
        namespace: str,
        name: str,
        service_class: ServiceClass,
        parameters: Dict[str, Any],
    ) -> str:
        body = self.build_instance(namespace, name, service_class, parameters)
        with translate_api_errors("ServiceInstance", f"{namespace}/{name}"):
            created = self._api.create_namespaced_custom_object(
                group=self._group,
                version=self._version,
                namespace=namespace,
                plural=SERVICE_INSTANCE_PLURAL,
                body=body,
                _request_timeout=self._timeout,
            )
        return created["metadata"]["name"]

    def get_instance_status(self, namespace: str, instance_id: str) -> InstanceStatus:
        with translate_api_errors("ServiceInstance", f"{namespace}/{instance_id}"):
            instance = self._api.get_namespaced_custom_object(
                group=self._group,
                version=self._version,
                namespace=namespace,
                plural=SERVICE_INSTANCE_PLURAL,
                name=instance_id,
                _request_timeout=self._timeout,
            )
        conditions = (instance.get("status") or {}).get("conditions")
        return status_from_conditions(conditions)


__all__ = ["KubernetesServiceCatalogStore"]
