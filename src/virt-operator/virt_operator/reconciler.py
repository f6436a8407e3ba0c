import copy
from typing import Any, Optional

from kubernetes.client import V1ObjectMeta
from kubernetes.client.rest import ApiException
from loguru import logger

from virt_common.client import KubevirtClient
from virt_common.constants import (
    EPHEMERAL_BACKUP_OBJECT_ANNOTATION,
    KUBEVIRT_GENERATION_ANNOTATION,
    MANAGED_BY_LABEL,
    MANAGED_BY_OPERATOR_VALUE,
)
from virt_common.exceptions import ObjectSyncError, ReconcileError
from virt_common.k8s import annotations_of, labels_of
from virt_common.models import KubeVirt, VersionTag
from virt_operator.config import settings
from virt_operator.expectations import ResourceExpectations
from virt_operator.install_strategy import InstallStrategy
from virt_operator.rbac import RbacKind, ResourceAdapter, build_adapters
from virt_operator.stores import Stores


def inject_operator_metadata(kv: KubeVirt, meta: V1ObjectMeta, version: VersionTag, ephemeral: bool = False):
    """
    Stamp the managed-by label and version annotations onto meta.

    Live objects also record the generation of the KubeVirt install so a spec
    change forces an update. Ephemeral backups are never updated and don't.
    """
    labels = dict(meta.labels or {})
    labels[MANAGED_BY_LABEL] = MANAGED_BY_OPERATOR_VALUE
    meta.labels = labels

    annotations = dict(meta.annotations or {})
    annotations.update(version.to_annotations())
    if not ephemeral:
        annotations[KUBEVIRT_GENERATION_ANNOTATION] = str(kv.generation)
    meta.annotations = annotations


def object_matches_version(meta: Optional[V1ObjectMeta], version: VersionTag, generation: int) -> bool:
    if meta is None or not meta.annotations:
        return False
    found_generation = annotations_of(meta).get(KUBEVIRT_GENERATION_ANNOTATION)
    managed = labels_of(meta).get(MANAGED_BY_LABEL) == MANAGED_BY_OPERATOR_VALUE
    return VersionTag.from_meta(meta) == version and found_generation == str(generation) and managed


def is_backup(obj: Any) -> bool:
    return EPHEMERAL_BACKUP_OBJECT_ANNOTATION in annotations_of(obj.metadata)


def _identity(obj: Any) -> tuple[str, Optional[str]]:
    meta = obj.metadata
    return meta.name or meta.generate_name, meta.namespace


class Reconciler:
    """
    Drives the RBAC objects of one KubeVirt install toward its install strategy.

    A pass backs up every stale object, then creates what is missing and
    replaces what is out of date. Each object is handled on its own: a failure
    is recorded and the pass moves on, and all failures are raised together at
    the end as a ReconcileError so the caller retries the pass.
    """

    def __init__(
        self,
        kv: KubeVirt,
        strategy: InstallStrategy,
        client: KubevirtClient,
        stores: Stores,
        expectations: ResourceExpectations,
        adapters: Optional[dict[RbacKind, ResourceAdapter]] = None,
    ):
        self.kv = kv
        self.kv_key = kv.key
        self.strategy = strategy
        self.client = client
        self.stores = stores
        self.expectations = expectations
        self.adapters = adapters or build_adapters(client.rbac_v1, settings.monitor_service_account)

    @property
    def target_version(self) -> VersionTag:
        return self.kv.target_version

    def sync(self) -> bool:
        """
        Run one reconciliation pass.

        Kinds with outstanding expectations are skipped since their cache may
        not show what was already issued. Returns True once nothing is pending
        for this install.
        """
        kinds = []
        for kind in RbacKind:
            if self.expectations.satisfied(self.kv_key, kind):
                kinds.append(kind)
            else:
                logger.debug(f"Waiting for pending {kind.value} changes of {self.kv_key} to show up in the cache")

        errors: list[ObjectSyncError] = []
        failed_backups: set[str] = set()
        for kind in kinds:
            errors.extend(self.backup_kind(kind, failed_backups))
        for kind in kinds:
            errors.extend(self.create_or_update_kind(kind, failed_backups))

        if errors:
            for error in errors:
                logger.error(f"{self.kv_key}: {error}")
            raise ReconcileError(errors)

        return self.expectations.satisfied(self.kv_key)

    def backup_rbac(self) -> list[ObjectSyncError]:
        """Back up every stale object of every kind."""
        errors = []
        for kind in RbacKind:
            errors.extend(self.backup_kind(kind))
        return errors

    def backup_kind(self, kind: RbacKind, failed: Optional[set[str]] = None) -> list[ObjectSyncError]:
        adapter = self.adapters[kind]
        errors = []
        for cached in self.stores.for_kind(kind).list():
            if adapter.skip(cached, self.stores) or not self.needs_backup(kind, cached):
                continue
            try:
                self._create_backup(kind, adapter, cached)
            except ObjectSyncError as exc:
                errors.append(exc)
                if failed is not None:
                    failed.add(cached.metadata.uid)
        return errors

    def needs_backup(self, kind: RbacKind, cached: Any) -> bool:
        version = VersionTag.from_meta(cached.metadata)
        # Not one of ours, or a backup itself.
        if version is None or is_backup(cached):
            return False
        if version == self.target_version:
            return False

        # Only one backup per object and version.
        uid = cached.metadata.uid
        for other in self.stores.for_kind(kind).list():
            if other.metadata.deletion_timestamp is not None:
                continue
            if annotations_of(other.metadata).get(EPHEMERAL_BACKUP_OBJECT_ANNOTATION) != uid:
                continue
            if VersionTag.from_meta(other.metadata) == version:
                return False
        return True

    def _create_backup(self, kind: RbacKind, adapter: ResourceAdapter, cached: Any):
        version = VersionTag.from_meta(cached.metadata)

        backup = copy.deepcopy(cached)
        backup.metadata = V1ObjectMeta(generate_name=cached.metadata.name, namespace=cached.metadata.namespace)
        inject_operator_metadata(self.kv, backup.metadata, version, ephemeral=True)
        backup.metadata.annotations[EPHEMERAL_BACKUP_OBJECT_ANNOTATION] = cached.metadata.uid

        self.expectations.raise_expectations(self.kv_key, kind, 1, 0)
        try:
            created = adapter.create(backup)
        except ApiException as exc:
            self.expectations.lower_expectations(self.kv_key, kind, 1, 0)
            name, namespace = _identity(cached)
            raise ObjectSyncError("back up", kind.value, name, namespace, exc) from exc

        name = getattr(getattr(created, "metadata", None), "name", None) or backup.metadata.generate_name
        logger.info(f"backup {kind.value} {name} of {cached.metadata.name} ({version}) created")

    def create_or_update_kind(self, kind: RbacKind, failed_backups: Optional[set[str]] = None) -> list[ObjectSyncError]:
        errors = []
        for desired in self.strategy.objects(kind):
            try:
                self.create_or_update(kind, desired, failed_backups)
            except ObjectSyncError as exc:
                errors.append(exc)
        return errors

    def create_or_update(self, kind: RbacKind, desired: Any, failed_backups: Optional[set[str]] = None):
        adapter = self.adapters[kind]
        if adapter.skip(desired, self.stores):
            logger.debug(f"{kind.value} {desired.metadata.name} skipped, service monitoring is disabled")
            return

        obj = copy.deepcopy(desired)
        if adapter.namespaced and not obj.metadata.namespace:
            obj.metadata.namespace = self.kv.namespace or settings.namespace
        name, namespace = _identity(obj)

        cached, exists = self.stores.for_kind(kind).get(obj)

        version = self.target_version
        inject_operator_metadata(self.kv, obj.metadata, version)

        if not exists:
            self.expectations.raise_expectations(self.kv_key, kind, 1, 0)
            try:
                adapter.create(obj)
            except ApiException as exc:
                self.expectations.lower_expectations(self.kv_key, kind, 1, 0)
                raise ObjectSyncError("create", kind.value, name, namespace, exc) from exc
            logger.info(f"{kind.value} {name} created")
        elif not object_matches_version(cached.metadata, version, self.kv.generation):
            if failed_backups and cached.metadata.uid in failed_backups:
                logger.warning(f"{kind.value} {name} not updated, its backup failed")
                return
            # Rules are replaced wholesale, no patching needed.
            try:
                adapter.update(obj)
            except ApiException as exc:
                raise ObjectSyncError("update", kind.value, name, namespace, exc) from exc
            logger.info(f"{kind.value} {name} updated")
        else:
            logger.debug(f"{kind.value} {name} already exists")
