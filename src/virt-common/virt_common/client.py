"""
Kubernetes client bundle shared by the node admitter and the operator.
"""

import os
from typing import Optional

from kubernetes import client
from kubernetes.client import V1Pod
from kubernetes.client.rest import ApiException
from kubernetes.config import load_incluster_config, load_kube_config
from loguru import logger

from virt_common.constants import NAMESPACE_ALL, SERVICE_MONITOR_CRD
from virt_common.exceptions import KubernetesClientError
from virt_common.models import KubeVirt
from virt_common.settings import VirtSettings


def load_kubernetes_config():
    """
    Load in-cluster config when running in a pod, otherwise the kubeconfig.
    """
    if os.getenv("KUBERNETES_SERVICE_HOST") is not None:
        load_incluster_config()
    else:
        load_kube_config(config_file=os.getenv("KUBECONFIG"))


class KubevirtClient:
    """
    The typed API groups used by the admitter and the operator, built on one
    ApiClient. Constructed explicitly and handed to each engine.
    """

    def __init__(self, api_client: Optional[client.ApiClient] = None, settings: Optional[VirtSettings] = None):
        self.api_client = api_client or client.ApiClient()
        self.settings = settings or VirtSettings()
        self.core_v1 = client.CoreV1Api(self.api_client)
        self.rbac_v1 = client.RbacAuthorizationV1Api(self.api_client)
        self.custom_objects = client.CustomObjectsApi(self.api_client)
        self.apiextensions_v1 = client.ApiextensionsV1Api(self.api_client)

    @classmethod
    def from_environment(cls, settings: Optional[VirtSettings] = None) -> "KubevirtClient":
        try:
            load_kubernetes_config()
        except Exception as exc:
            raise KubernetesClientError(f"Failed to create Kubernetes client: {str(exc)}") from exc
        return cls(settings=settings)

    def list_kubevirts(self, namespace: str = NAMESPACE_ALL) -> list[KubeVirt]:
        """List KubeVirt installs, across every namespace unless one is given."""
        if namespace:
            response = self.custom_objects.list_namespaced_custom_object(
                group=self.settings.kubevirt_group,
                version=self.settings.kubevirt_version,
                namespace=namespace,
                plural=self.settings.kubevirt_plural,
            )
        else:
            response = self.custom_objects.list_cluster_custom_object(
                group=self.settings.kubevirt_group,
                version=self.settings.kubevirt_version,
                plural=self.settings.kubevirt_plural,
            )
        return [KubeVirt.from_dict(item) for item in response.get("items") or []]

    def list_pods_on_node(self, node_name: str, label_selector: str) -> list[V1Pod]:
        pods = self.core_v1.list_pod_for_all_namespaces(
            field_selector=f"spec.nodeName={node_name}",
            label_selector=label_selector,
        )
        return pods.items or []

    def has_service_monitor_crd(self) -> bool:
        """Whether the prometheus-operator ServiceMonitor CRD is installed."""
        try:
            self.apiextensions_v1.read_custom_resource_definition(name=SERVICE_MONITOR_CRD)
        except ApiException as exc:
            if exc.status == 404:
                logger.debug(f"{SERVICE_MONITOR_CRD} not found, service monitoring disabled")
                return False
            raise
        return True
