from typing import NamedTuple


class GroupVersionResource(NamedTuple):
    group: str
    version: str
    resource: str


NAMESPACE_ALL = ""

NODE_GROUP_VERSION_RESOURCE = GroupVersionResource(group="", version="v1", resource="nodes")

# Install strategy metadata
INSTALL_STRATEGY_VERSION_ANNOTATION = "kubevirt.io/install-strategy-version"
INSTALL_STRATEGY_REGISTRY_ANNOTATION = "kubevirt.io/install-strategy-registry"
INSTALL_STRATEGY_IDENTIFIER_ANNOTATION = "kubevirt.io/install-strategy-identifier"
KUBEVIRT_GENERATION_ANNOTATION = "kubevirt.io/generation"
EPHEMERAL_BACKUP_OBJECT_ANNOTATION = "kubevirt.io/ephemeral-backup-object"

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_OPERATOR_VALUE = "virt-operator"

SERVICE_MONITOR_CRD = "servicemonitors.monitoring.coreos.com"
