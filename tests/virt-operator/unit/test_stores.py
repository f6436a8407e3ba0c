from unittest.mock import MagicMock

import pytest

from fixtures.operator_fixtures import cluster_role, role
from virt_operator.rbac import RbacKind
from virt_operator.stores import ObjectStore, Stores, load_stores


def test_object_store_keys():
    store = ObjectStore("role")
    store.add(role("a", "ns1"))
    store.add(role("a", "ns2"))
    store.add(cluster_role("global"))

    assert sorted(store.list_keys()) == ["global", "ns1/a", "ns2/a"]
    assert len(store) == 3

    obj, exists = store.get(role("a", "ns1"))
    assert exists
    assert obj.metadata.namespace == "ns1"


def test_object_store_update_and_delete():
    store = ObjectStore("clusterrole")
    store.add(cluster_role(verbs=("get",)))
    store.update(cluster_role(verbs=("get", "watch")))

    obj, _ = store.get_by_key("kubevirt.io:operator")
    assert obj.rules[0].verbs == ["get", "watch"]

    store.delete(cluster_role())
    assert store.get_by_key("kubevirt.io:operator") == (None, False)
    store.delete(cluster_role())


def test_object_store_replace():
    store = ObjectStore("clusterrole")
    store.add(cluster_role("old"))
    store.replace([cluster_role("new")])
    assert store.list_keys() == ["new"]


def test_stores_for_kind():
    stores = Stores()
    assert stores.for_kind(RbacKind.CLUSTER_ROLE) is stores.cluster_role_cache
    assert stores.for_kind(RbacKind.CLUSTER_ROLE_BINDING) is stores.cluster_role_binding_cache
    assert stores.for_kind("role") is stores.role_cache
    assert stores.for_kind(RbacKind.ROLE_BINDING) is stores.role_binding_cache
    assert stores.service_monitor_enabled is False


def test_load_stores_lists_every_kind(mock_rbac_api, mock_kubevirt_client, adapters):
    mock_rbac_api.list_cluster_role.return_value = MagicMock(items=[cluster_role()])
    mock_rbac_api.list_cluster_role_binding.return_value = MagicMock(items=[])
    mock_rbac_api.list_role_for_all_namespaces.return_value = MagicMock(items=[role(), role("x", "other")])
    mock_rbac_api.list_role_binding_for_all_namespaces.return_value = MagicMock(items=None)

    stores = load_stores(mock_kubevirt_client, adapters, label_selector="app.kubernetes.io/managed-by=virt-operator")

    assert len(stores.cluster_role_cache) == 1
    assert len(stores.cluster_role_binding_cache) == 0
    assert sorted(stores.role_cache.list_keys()) == ["kubevirt/kubevirt-handler", "other/x"]
    assert len(stores.role_binding_cache) == 0
    mock_rbac_api.list_cluster_role.assert_called_once_with(
        label_selector="app.kubernetes.io/managed-by=virt-operator"
    )
    assert stores.service_monitor_enabled is False
    mock_kubevirt_client.has_service_monitor_crd.assert_called_once()


@pytest.mark.parametrize("detected", [True, False])
def test_load_stores_detects_service_monitoring(mock_rbac_api, mock_kubevirt_client, adapters, detected):
    for method in ("list_cluster_role", "list_cluster_role_binding", "list_role_for_all_namespaces",
                   "list_role_binding_for_all_namespaces"):
        getattr(mock_rbac_api, method).return_value = MagicMock(items=[])
    mock_kubevirt_client.has_service_monitor_crd.return_value = detected

    stores = load_stores(mock_kubevirt_client, adapters)

    assert stores.service_monitor_enabled is detected


def test_load_stores_explicit_flag_skips_detection(mock_rbac_api, mock_kubevirt_client, adapters):
    for method in ("list_cluster_role", "list_cluster_role_binding", "list_role_for_all_namespaces",
                   "list_role_binding_for_all_namespaces"):
        getattr(mock_rbac_api, method).return_value = MagicMock(items=[])
    existing = Stores()

    stores = load_stores(mock_kubevirt_client, adapters, service_monitor_enabled=True, stores=existing)

    assert stores is existing
    assert stores.service_monitor_enabled is True
    mock_kubevirt_client.has_service_monitor_crd.assert_not_called()
    mock_rbac_api.list_role_for_all_namespaces.assert_called_once_with(label_selector="")
