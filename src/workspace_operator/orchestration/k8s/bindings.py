"""Role binding store backed by the Kubernetes RBAC API."""
from __future__ import annotations

from kubernetes import client

from ..stores import RoleBindingRequest
from .client import translate_api_errors

RBAC_API_GROUP = "rbac.authorization.k8s.io"


def build_role_binding(binding: RoleBindingRequest) -> client.V1RoleBinding:
    return client.V1RoleBinding(
        api_version=f"{RBAC_API_GROUP}/v1",
        kind="RoleBinding",
        metadata=client.V1ObjectMeta(
            name=binding.name,
            namespace=binding.namespace,
            labels=dict(binding.labels),
        ),
        role_ref=client.V1RoleRef(api_group=RBAC_API_GROUP, kind="ClusterRole", name=binding.role),
        subjects=[client.RbacV1Subject(api_group=RBAC_API_GROUP, kind="User", name=binding.user_name)],
    )


class KubernetesBindingStore:
    """Create namespaced role bindings through ``RbacAuthorizationV1Api``."""

    def __init__(self, api_client: client.ApiClient, request_timeout: float = 30) -> None:
        self._api = client.RbacAuthorizationV1Api(api_client)
        self._timeout = request_timeout

    def create(self, binding: RoleBindingRequest) -> str:
        with translate_api_errors("RoleBinding", f"{binding.namespace}/{binding.name}"):
            created = self._api.create_namespaced_role_binding(
                namespace=binding.namespace,
                body=build_role_binding(binding),
                _request_timeout=self._timeout,
            )
        return created.metadata.name


__all__ = ["KubernetesBindingStore", "build_role_binding"]
