import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

from loguru import logger

from virt_common.client import KubevirtClient
from virt_common.k8s import object_key
from virt_operator.rbac import RbacKind, ResourceAdapter


class ObjectStore:
    """
    Thread-safe cache of one kind of object, keyed by ``namespace/name``.

    Fed by a watch (or by load_stores for the initial list); the reconciler only
    reads from it.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._lock = threading.RLock()
        self._items: dict[str, Any] = {}

    def add(self, obj: Any):
        with self._lock:
            self._items[object_key(obj)] = obj

    def update(self, obj: Any):
        self.add(obj)

    def delete(self, obj: Any):
        with self._lock:
            self._items.pop(object_key(obj), None)

    def replace(self, objs: Iterable[Any]):
        with self._lock:
            self._items = {object_key(obj): obj for obj in objs}

    def get(self, obj: Any) -> Tuple[Optional[Any], bool]:
        return self.get_by_key(object_key(obj))

    def get_by_key(self, key: str) -> Tuple[Optional[Any], bool]:
        with self._lock:
            item = self._items.get(key)
            return item, item is not None

    def list(self) -> List[Any]:
        with self._lock:
            return list(self._items.values())

    def list_keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass
class Stores:
    cluster_role_cache: ObjectStore = field(default_factory=lambda: ObjectStore(RbacKind.CLUSTER_ROLE.value))
    cluster_role_binding_cache: ObjectStore = field(
        default_factory=lambda: ObjectStore(RbacKind.CLUSTER_ROLE_BINDING.value)
    )
    role_cache: ObjectStore = field(default_factory=lambda: ObjectStore(RbacKind.ROLE.value))
    role_binding_cache: ObjectStore = field(default_factory=lambda: ObjectStore(RbacKind.ROLE_BINDING.value))
    service_monitor_enabled: bool = False

    def for_kind(self, kind: RbacKind) -> ObjectStore:
        return {
            RbacKind.CLUSTER_ROLE: self.cluster_role_cache,
            RbacKind.CLUSTER_ROLE_BINDING: self.cluster_role_binding_cache,
            RbacKind.ROLE: self.role_cache,
            RbacKind.ROLE_BINDING: self.role_binding_cache,
        }[RbacKind(kind)]


def load_stores(
    client: KubevirtClient,
    adapters: dict[RbacKind, ResourceAdapter],
    label_selector: Optional[str] = None,
    service_monitor_enabled: Optional[bool] = None,
    stores: Optional[Stores] = None,
) -> Stores:
    """
    Fill the caches with the current cluster state of every managed kind.

    When service_monitor_enabled is None it is detected from the presence of
    the ServiceMonitor CRD.
    """
    stores = stores or Stores()
    for kind, adapter in adapters.items():
        objects = adapter.list(label_selector)
        stores.for_kind(kind).replace(objects)
        logger.debug(f"Loaded {len(objects)} {kind.value} object(s) into the cache")

    if service_monitor_enabled is None:
        service_monitor_enabled = client.has_service_monitor_crd()
    stores.service_monitor_enabled = service_monitor_enabled
    return stores
