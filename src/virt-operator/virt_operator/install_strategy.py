from typing import Any, Generator, Iterable, Tuple

import yaml
from kubernetes.client import V1ClusterRole, V1ClusterRoleBinding, V1Role, V1RoleBinding
from loguru import logger
from pydantic import BaseModel, ConfigDict

from virt_common.k8s import serializer
from virt_operator.rbac import RbacKind

_KINDS = {
    "ClusterRole": (RbacKind.CLUSTER_ROLE, "V1ClusterRole"),
    "ClusterRoleBinding": (RbacKind.CLUSTER_ROLE_BINDING, "V1ClusterRoleBinding"),
    "Role": (RbacKind.ROLE, "V1Role"),
    "RoleBinding": (RbacKind.ROLE_BINDING, "V1RoleBinding"),
}


class InstallStrategy(BaseModel):
    """Desired RBAC objects of one KubeVirt version."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    cluster_roles: list[V1ClusterRole] = []
    cluster_role_bindings: list[V1ClusterRoleBinding] = []
    roles: list[V1Role] = []
    role_bindings: list[V1RoleBinding] = []

    @classmethod
    def from_manifests(cls, docs: Iterable[dict[str, Any]]) -> "InstallStrategy":
        strategy = cls()
        for doc in docs:
            if not doc:
                continue
            kind = doc.get("kind", "")
            if kind not in _KINDS:
                logger.debug(f"Ignoring {kind or 'untyped'} manifest in install strategy")
                continue
            rbac_kind, model = _KINDS[kind]
            strategy.objects(rbac_kind).append(serializer.deserialize(doc, model))
        return strategy

    @classmethod
    def load(cls, stream) -> "InstallStrategy":
        """Read a multi-document YAML stream (string or file object)."""
        return cls.from_manifests(yaml.safe_load_all(stream))

    def objects(self, kind: RbacKind) -> list[Any]:
        return {
            RbacKind.CLUSTER_ROLE: self.cluster_roles,
            RbacKind.CLUSTER_ROLE_BINDING: self.cluster_role_bindings,
            RbacKind.ROLE: self.roles,
            RbacKind.ROLE_BINDING: self.role_bindings,
        }[RbacKind(kind)]

    def items(self) -> Generator[Tuple[RbacKind, list[Any]], None, None]:
        yield RbacKind.CLUSTER_ROLE, self.cluster_roles
        yield RbacKind.CLUSTER_ROLE_BINDING, self.cluster_role_bindings
        yield RbacKind.ROLE, self.roles
        yield RbacKind.ROLE_BINDING, self.role_bindings
