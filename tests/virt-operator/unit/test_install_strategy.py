import io

from kubernetes.client import V1ClusterRole, V1RoleBinding

from virt_operator.install_strategy import InstallStrategy
from virt_operator.rbac import RbacKind

MANIFESTS = """
apiVersion: rbac.authorization.k8s.io/v1
kind: ClusterRole
metadata:
  name: kubevirt.io:operator
rules:
  - apiGroups: ["kubevirt.io"]
    resources: ["kubevirts"]
    verbs: ["get", "list", "watch"]
---
apiVersion: rbac.authorization.k8s.io/v1
kind: ClusterRoleBinding
metadata:
  name: kubevirt-operator
roleRef:
  apiGroup: rbac.authorization.k8s.io
  kind: ClusterRole
  name: kubevirt.io:operator
subjects:
  - kind: ServiceAccount
    name: kubevirt-operator
    namespace: kubevirt
---
apiVersion: rbac.authorization.k8s.io/v1
kind: Role
metadata:
  name: kubevirt-handler
  namespace: kubevirt
rules:
  - apiGroups: [""]
    resources: ["configmaps"]
    verbs: ["get"]
---
apiVersion: rbac.authorization.k8s.io/v1
kind: RoleBinding
metadata:
  name: kubevirt-handler
roleRef:
  apiGroup: rbac.authorization.k8s.io
  kind: Role
  name: kubevirt-handler
subjects:
  - kind: ServiceAccount
    name: kubevirt-handler
    namespace: kubevirt
---
apiVersion: v1
kind: ServiceAccount
metadata:
  name: kubevirt-handler
---
"""


def test_load_yaml_stream():
    strategy = InstallStrategy.load(MANIFESTS)

    assert len(strategy.cluster_roles) == 1
    assert len(strategy.cluster_role_bindings) == 1
    assert len(strategy.roles) == 1
    assert len(strategy.role_bindings) == 1

    cluster_role = strategy.cluster_roles[0]
    assert isinstance(cluster_role, V1ClusterRole)
    assert cluster_role.rules[0].verbs == ["get", "list", "watch"]

    binding = strategy.role_bindings[0]
    assert isinstance(binding, V1RoleBinding)
    assert binding.metadata.namespace is None
    assert binding.role_ref.name == "kubevirt-handler"


def test_load_file_object():
    strategy = InstallStrategy.load(io.StringIO(MANIFESTS))
    assert [obj.metadata.name for obj in strategy.objects(RbacKind.ROLE)] == ["kubevirt-handler"]


def test_items_in_kind_order():
    strategy = InstallStrategy.load(MANIFESTS)
    assert [kind for kind, _ in strategy.items()] == [
        RbacKind.CLUSTER_ROLE,
        RbacKind.CLUSTER_ROLE_BINDING,
        RbacKind.ROLE,
        RbacKind.ROLE_BINDING,
    ]


def test_empty_strategy():
    strategy = InstallStrategy.from_manifests([])
    for kind in RbacKind:
        assert strategy.objects(kind) == []


def test_objects_accepts_kind_values():
    strategy = InstallStrategy.load(MANIFESTS)
    assert strategy.objects("clusterrolebinding") is strategy.cluster_role_bindings
