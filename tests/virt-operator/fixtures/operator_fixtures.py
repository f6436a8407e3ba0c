import copy
import uuid
from unittest.mock import MagicMock

import pytest
from kubernetes.client import (
    RbacAuthorizationV1Api,
    V1ClusterRole,
    V1ClusterRoleBinding,
    V1ObjectMeta,
    V1PolicyRule,
    V1Role,
    V1RoleBinding,
)

from virt_common.k8s import serializer
from virt_common.models import KubeVirt, VersionTag
from virt_operator.expectations import ResourceExpectations
from virt_operator.install_strategy import InstallStrategy
from virt_operator.rbac import RbacKind, build_adapters
from virt_operator.reconciler import Reconciler, inject_operator_metadata
from virt_operator.stores import Stores

MONITOR_ACCOUNT = "kubevirt-monitoring"

CREATE_METHODS = {
    RbacKind.CLUSTER_ROLE: "create_cluster_role",
    RbacKind.CLUSTER_ROLE_BINDING: "create_cluster_role_binding",
    RbacKind.ROLE: "create_namespaced_role",
    RbacKind.ROLE_BINDING: "create_namespaced_role_binding",
}
UPDATE_METHODS = {
    RbacKind.CLUSTER_ROLE: "replace_cluster_role",
    RbacKind.CLUSTER_ROLE_BINDING: "replace_cluster_role_binding",
    RbacKind.ROLE: "replace_namespaced_role",
    RbacKind.ROLE_BINDING: "replace_namespaced_role_binding",
}
MUTATING_METHODS = set(CREATE_METHODS.values()) | set(UPDATE_METHODS.values())


def make_kubevirt(version="v1.1.0", registry="quay.io/kubevirt", install_id="id-new", generation=1) -> KubeVirt:
    return KubeVirt.from_dict(
        {
            "metadata": {"name": "kubevirt", "namespace": "kubevirt", "uid": "kv-uid", "generation": generation},
            "spec": {},
            "status": {
                "targetKubeVirtVersion": version,
                "targetKubeVirtRegistry": registry,
                "targetDeploymentID": install_id,
            },
        }
    )


def cluster_role(name="kubevirt.io:operator", verbs=("get", "list")) -> V1ClusterRole:
    return V1ClusterRole(
        api_version="rbac.authorization.k8s.io/v1",
        kind="ClusterRole",
        metadata=V1ObjectMeta(name=name),
        rules=[V1PolicyRule(api_groups=["kubevirt.io"], resources=["virtualmachines"], verbs=list(verbs))],
    )


def cluster_role_binding(name="kubevirt-operator") -> V1ClusterRoleBinding:
    return serializer.deserialize(
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRoleBinding",
            "metadata": {"name": name},
            "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": "ClusterRole", "name": "kubevirt.io:operator"},
            "subjects": [{"kind": "ServiceAccount", "name": "kubevirt-operator", "namespace": "kubevirt"}],
        },
        "V1ClusterRoleBinding",
    )


def role(name="kubevirt-handler", namespace="kubevirt") -> V1Role:
    return V1Role(
        api_version="rbac.authorization.k8s.io/v1",
        kind="Role",
        metadata=V1ObjectMeta(name=name, namespace=namespace),
        rules=[V1PolicyRule(api_groups=[""], resources=["configmaps"], verbs=["get"])],
    )


def role_binding(name="kubevirt-handler", namespace="kubevirt") -> V1RoleBinding:
    return serializer.deserialize(
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "RoleBinding",
            "metadata": {"name": name, "namespace": namespace},
            "roleRef": {"apiGroup": "rbac.authorization.k8s.io", "kind": "Role", "name": name},
            "subjects": [{"kind": "ServiceAccount", "name": name, "namespace": namespace}],
        },
        "V1RoleBinding",
    )


def cached_copy(obj, kv: KubeVirt, version: VersionTag, uid=None, generation=None):
    """What the cache holds for obj after the operator created it at version."""
    cached = copy.deepcopy(obj)
    if cached.metadata.namespace is None and isinstance(cached, (V1Role, V1RoleBinding)):
        cached.metadata.namespace = kv.namespace
    inject_operator_metadata(kv, cached.metadata, version)
    if generation is not None:
        cached.metadata.annotations["kubevirt.io/generation"] = str(generation)
    cached.metadata.uid = uid or str(uuid.uuid4())
    cached.metadata.resource_version = "1"
    return cached


def _created(body, **kwargs):
    created = copy.deepcopy(body)
    if not created.metadata.name:
        created.metadata.name = f"{created.metadata.generate_name}{uuid.uuid4().hex[:5]}"
    created.metadata.uid = str(uuid.uuid4())
    created.metadata.resource_version = "1"
    return created


def _updated(name=None, body=None, **kwargs):
    updated = copy.deepcopy(body)
    updated.metadata.resource_version = "2"
    return updated


def mutating_calls(rbac_api):
    return [c for c in rbac_api.method_calls if c[0] in MUTATING_METHODS]


def observe(stores: Stores, expectations: ResourceExpectations, kv: KubeVirt, rbac_api):
    """Feed every object the API returned back into the caches, like a watch would."""
    for kind, method in CREATE_METHODS.items():
        results = getattr(rbac_api, f"_{method}_results")
        for result in results:
            stores.for_kind(kind).add(result)
            expectations.creation_observed(kv.key, kind)
        results.clear()
    for kind, method in UPDATE_METHODS.items():
        results = getattr(rbac_api, f"_{method}_results")
        for result in results:
            stores.for_kind(kind).update(result)
        results.clear()


@pytest.fixture
def mock_rbac_api():
    """RbacAuthorizationV1Api double that echoes objects back the way the API server would."""
    api = MagicMock(spec=RbacAuthorizationV1Api)

    def recording(method, fn):
        results = []
        setattr(api, f"_{method}_results", results)

        def _side_effect(*args, **kwargs):
            result = fn(*args, **kwargs)
            results.append(result)
            return result

        return _side_effect

    for method in CREATE_METHODS.values():
        getattr(api, method).side_effect = recording(method, _created)
    for method in UPDATE_METHODS.values():
        getattr(api, method).side_effect = recording(method, _updated)
    return api


@pytest.fixture
def mock_kubevirt_client(mock_rbac_api):
    client = MagicMock()
    client.rbac_v1 = mock_rbac_api
    client.has_service_monitor_crd.return_value = False
    return client


@pytest.fixture
def kubevirt():
    return make_kubevirt()


@pytest.fixture
def target_version(kubevirt):
    return kubevirt.target_version


@pytest.fixture
def old_version():
    return VersionTag(image_tag="v1.0.0", image_registry="quay.io/kubevirt", install_id="id-old")


@pytest.fixture
def install_strategy():
    return InstallStrategy(
        cluster_roles=[cluster_role()],
        cluster_role_bindings=[cluster_role_binding()],
        roles=[role(), role(MONITOR_ACCOUNT)],
        role_bindings=[role_binding(), role_binding(MONITOR_ACCOUNT)],
    )


@pytest.fixture
def stores():
    return Stores()


@pytest.fixture
def expectations():
    return ResourceExpectations(list(RbacKind))


@pytest.fixture
def adapters(mock_rbac_api):
    return build_adapters(mock_rbac_api, MONITOR_ACCOUNT)


@pytest.fixture
def reconciler(kubevirt, install_strategy, mock_kubevirt_client, stores, expectations, adapters):
    return Reconciler(kubevirt, install_strategy, mock_kubevirt_client, stores, expectations, adapters)
