"""
Per-kind access to the four RBAC resources the operator manages.
"""

import abc
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from kubernetes.client import (
    RbacAuthorizationV1Api,
    V1ClusterRole,
    V1ClusterRoleBinding,
    V1Role,
    V1RoleBinding,
)

if TYPE_CHECKING:
    from virt_operator.stores import Stores


class RbacKind(str, Enum):
    CLUSTER_ROLE = "clusterrole"
    CLUSTER_ROLE_BINDING = "clusterrolebinding"
    ROLE = "role"
    ROLE_BINDING = "rolebinding"


class ResourceAdapter(abc.ABC):
    """Create, update and list one RBAC kind, plus the kind's skip policy."""

    kind: RbacKind
    model: type
    namespaced: bool = False

    def __init__(self, rbac_api: RbacAuthorizationV1Api):
        self.rbac_api = rbac_api

    @abc.abstractmethod
    def create(self, obj: Any) -> Any:
        ...

    @abc.abstractmethod
    def update(self, obj: Any) -> Any:
        """Replace the whole object; rules and subjects are never patched."""
        ...

    @abc.abstractmethod
    def list(self, label_selector: Optional[str] = None) -> list[Any]:
        ...

    def skip(self, obj: Any, stores: "Stores") -> bool:
        return False


class ClusterRoleAdapter(ResourceAdapter):
    kind = RbacKind.CLUSTER_ROLE
    model = V1ClusterRole

    def create(self, obj: V1ClusterRole) -> V1ClusterRole:
        return self.rbac_api.create_cluster_role(body=obj)

    def update(self, obj: V1ClusterRole) -> V1ClusterRole:
        return self.rbac_api.replace_cluster_role(name=obj.metadata.name, body=obj)

    def list(self, label_selector: Optional[str] = None) -> list[V1ClusterRole]:
        return self.rbac_api.list_cluster_role(label_selector=label_selector or "").items or []


class ClusterRoleBindingAdapter(ResourceAdapter):
    kind = RbacKind.CLUSTER_ROLE_BINDING
    model = V1ClusterRoleBinding

    def create(self, obj: V1ClusterRoleBinding) -> V1ClusterRoleBinding:
        return self.rbac_api.create_cluster_role_binding(body=obj)

    def update(self, obj: V1ClusterRoleBinding) -> V1ClusterRoleBinding:
        return self.rbac_api.replace_cluster_role_binding(name=obj.metadata.name, body=obj)

    def list(self, label_selector: Optional[str] = None) -> list[V1ClusterRoleBinding]:
        return self.rbac_api.list_cluster_role_binding(label_selector=label_selector or "").items or []


class MonitoringGatedAdapter(ResourceAdapter):
    """Skips the monitoring service account's objects while service monitoring is off."""

    def __init__(self, rbac_api: RbacAuthorizationV1Api, monitor_service_account: str):
        super().__init__(rbac_api)
        self.monitor_service_account = monitor_service_account

    def skip(self, obj: Any, stores: "Stores") -> bool:
        return not stores.service_monitor_enabled and obj.metadata.name == self.monitor_service_account


class RoleAdapter(MonitoringGatedAdapter):
    kind = RbacKind.ROLE
    model = V1Role
    namespaced = True

    def create(self, obj: V1Role) -> V1Role:
        return self.rbac_api.create_namespaced_role(namespace=obj.metadata.namespace, body=obj)

    def update(self, obj: V1Role) -> V1Role:
        return self.rbac_api.replace_namespaced_role(
            name=obj.metadata.name, namespace=obj.metadata.namespace, body=obj
        )

    def list(self, label_selector: Optional[str] = None) -> list[V1Role]:
        return self.rbac_api.list_role_for_all_namespaces(label_selector=label_selector or "").items or []


class RoleBindingAdapter(MonitoringGatedAdapter):
    kind = RbacKind.ROLE_BINDING
    model = V1RoleBinding
    namespaced = True

    def create(self, obj: V1RoleBinding) -> V1RoleBinding:
        return self.rbac_api.create_namespaced_role_binding(namespace=obj.metadata.namespace, body=obj)

    def update(self, obj: V1RoleBinding) -> V1RoleBinding:
        return self.rbac_api.replace_namespaced_role_binding(
            name=obj.metadata.name, namespace=obj.metadata.namespace, body=obj
        )

    def list(self, label_selector: Optional[str] = None) -> list[V1RoleBinding]:
        return self.rbac_api.list_role_binding_for_all_namespaces(label_selector=label_selector or "").items or []


def build_adapters(rbac_api: RbacAuthorizationV1Api, monitor_service_account: str) -> dict[RbacKind, ResourceAdapter]:
    return {
        RbacKind.CLUSTER_ROLE: ClusterRoleAdapter(rbac_api),
        RbacKind.CLUSTER_ROLE_BINDING: ClusterRoleBindingAdapter(rbac_api),
        RbacKind.ROLE: RoleAdapter(rbac_api, monitor_service_account),
        RbacKind.ROLE_BINDING: RoleBindingAdapter(rbac_api, monitor_service_account),
    }
