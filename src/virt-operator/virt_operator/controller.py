"""
Per-install entry point of the operator: refreshes the caches and runs a
reconciliation pass for a KubeVirt install.
"""

from typing import Optional

from loguru import logger

from virt_common.client import KubevirtClient
from virt_common.exceptions import ReconcileError
from virt_common.models import KubeVirt
from virt_operator.config import OperatorSettings, settings as default_settings
from virt_operator.expectations import ResourceExpectations
from virt_operator.install_strategy import InstallStrategy
from virt_operator.rbac import RbacKind, build_adapters
from virt_operator.reconciler import Reconciler
from virt_operator.stores import Stores, load_stores


class KubeVirtController:
    def __init__(
        self,
        client: KubevirtClient,
        strategy: InstallStrategy,
        settings: Optional[OperatorSettings] = None,
    ):
        self.client = client
        self.strategy = strategy
        self.settings = settings or default_settings
        self.adapters = build_adapters(client.rbac_v1, self.settings.monitor_service_account)
        self.expectations = ResourceExpectations(list(RbacKind), timeout=self.settings.expectations_timeout)
        self.stores: Optional[Stores] = None

    def refresh(self, kv: Optional[KubeVirt] = None) -> Stores:
        """
        Re-list every managed kind into the caches. Objects that appeared since
        the last list count as observed creations of kv.
        """
        previous = {}
        if self.stores is not None:
            previous = {kind: set(self.stores.for_kind(kind).list_keys()) for kind in RbacKind}

        self.stores = load_stores(
            self.client,
            self.adapters,
            label_selector=self.settings.managed_label_selector,
            service_monitor_enabled=self.settings.service_monitor_enabled,
            stores=self.stores,
        )

        if kv is not None:
            for kind, keys in previous.items():
                for _ in set(self.stores.for_kind(kind).list_keys()) - keys:
                    self.expectations.creation_observed(kv.key, kind)
        return self.stores

    def reconcile(self, kv: KubeVirt) -> bool:
        """
        Run one pass for kv. Returns True once every change issued for the
        install has shown up in the caches; ReconcileError propagates so the
        caller can requeue.
        """
        stores = self.refresh(kv)
        reconciler = Reconciler(kv, self.strategy, self.client, stores, self.expectations, self.adapters)
        try:
            settled = reconciler.sync()
        except ReconcileError as exc:
            logger.warning(f"Reconcile of {kv.key} failed for {len(exc.errors)} object(s), requeueing")
            raise
        if settled:
            logger.debug(f"{kv.key} is up to date")
        return settled

    def reconcile_all(self, namespace: str = "") -> dict[str, bool]:
        results = {}
        for kv in self.client.list_kubevirts(namespace):
            results[kv.key] = self.reconcile(kv)
        return results

    def forget(self, kv: KubeVirt):
        """Drop the expectations of an install that was deleted."""
        self.expectations.delete_expectations(kv.key)
