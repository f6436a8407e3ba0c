"""
Expectations record mutations the operator issued but has not yet seen in its
caches. While an owner has outstanding expectations for a kind, its cached view
of that kind is not trusted and the kind is left alone.
"""

import threading
import time
from typing import Iterable, Optional, Tuple

from loguru import logger

from virt_common.exceptions import ExpectationsError

EXPECTATIONS_TIMEOUT = 5 * 60


class _Expectation:
    __slots__ = ("add", "delete", "timestamp")

    def __init__(self, add: int = 0, delete: int = 0):
        self.add = add
        self.delete = delete
        self.timestamp = time.monotonic()

    def fulfilled(self) -> bool:
        return self.add <= 0 and self.delete <= 0

    def expired(self, timeout: float) -> bool:
        return time.monotonic() - self.timestamp > timeout


class ControllerExpectations:
    """Add/delete counters per owner key for a single resource kind."""

    def __init__(self, name: str, timeout: float = EXPECTATIONS_TIMEOUT):
        self.name = name
        self.timeout = timeout
        self._lock = threading.Lock()
        self._store: dict[str, _Expectation] = {}

    def get_expectations(self, key: str) -> Optional[Tuple[int, int]]:
        with self._lock:
            exp = self._store.get(key)
            return (exp.add, exp.delete) if exp else None

    def satisfied_expectations(self, key: str) -> bool:
        with self._lock:
            exp = self._store.get(key)
            if exp is None:
                return True
            if exp.fulfilled():
                return True
            if exp.expired(self.timeout):
                logger.warning(
                    f"{self.name} expectations for {key} expired with {exp.add} adds and {exp.delete} deletes pending"
                )
                return True
            return False

    def set_expectations(self, key: str, add: int, delete: int):
        if add < 0 or delete < 0:
            raise ExpectationsError(f"negative {self.name} expectations for {key}: add={add} delete={delete}")
        with self._lock:
            self._store[key] = _Expectation(add, delete)

    def expect_creations(self, key: str, adds: int):
        self.set_expectations(key, adds, 0)

    def expect_deletions(self, key: str, deletes: int):
        self.set_expectations(key, 0, deletes)

    def raise_expectations(self, key: str, add: int, delete: int):
        with self._lock:
            exp = self._store.get(key)
            if exp is None or exp.fulfilled():
                # Start a fresh window so an old timestamp cannot expire the new work.
                exp = self._store[key] = _Expectation()
            exp.add += add
            exp.delete += delete
            logger.trace(f"raised {self.name} expectations for {key}: add={exp.add} delete={exp.delete}")

    def lower_expectations(self, key: str, add: int, delete: int):
        with self._lock:
            exp = self._store.get(key)
            pending_add, pending_delete = (exp.add, exp.delete) if exp else (0, 0)
            if add > pending_add or delete > pending_delete:
                raise ExpectationsError(
                    f"cannot lower {self.name} expectations for {key} by add={add} delete={delete}, "
                    f"only add={pending_add} delete={pending_delete} pending"
                )
            if exp is None:
                return
            exp.add -= add
            exp.delete -= delete
            logger.trace(f"lowered {self.name} expectations for {key}: add={exp.add} delete={exp.delete}")

    def creation_observed(self, key: str):
        self._observe(key, add=1, delete=0)

    def deletion_observed(self, key: str):
        self._observe(key, add=0, delete=1)

    def _observe(self, key: str, add: int, delete: int):
        # Changes nobody waited for (e.g. the initial list) leave the counts alone.
        with self._lock:
            exp = self._store.get(key)
            if exp is None:
                return
            exp.add = max(exp.add - add, 0)
            exp.delete = max(exp.delete - delete, 0)

    def delete_expectations(self, key: str):
        with self._lock:
            self._store.pop(key, None)


def _kind_name(kind) -> str:
    return getattr(kind, "value", kind)


class ResourceExpectations:
    """One ControllerExpectations per resource kind, addressed by (owner, kind)."""

    def __init__(self, kinds: Iterable[str], timeout: float = EXPECTATIONS_TIMEOUT):
        self._by_kind = {_kind_name(kind): ControllerExpectations(_kind_name(kind), timeout) for kind in kinds}

    def for_kind(self, kind: str) -> ControllerExpectations:
        try:
            return self._by_kind[_kind_name(kind)]
        except KeyError:
            raise ExpectationsError(f"no expectations tracked for kind {kind}") from None

    def raise_expectations(self, owner: str, kind: str, adds: int, deletes: int):
        self.for_kind(kind).raise_expectations(owner, adds, deletes)

    def lower_expectations(self, owner: str, kind: str, adds: int, deletes: int):
        self.for_kind(kind).lower_expectations(owner, adds, deletes)

    def creation_observed(self, owner: str, kind: str):
        self.for_kind(kind).creation_observed(owner)

    def deletion_observed(self, owner: str, kind: str):
        self.for_kind(kind).deletion_observed(owner)

    def satisfied(self, owner: str, kind: Optional[str] = None) -> bool:
        if kind is not None:
            return self.for_kind(kind).satisfied_expectations(owner)
        return all(exp.satisfied_expectations(owner) for exp in self._by_kind.values())

    def delete_expectations(self, owner: str):
        for exp in self._by_kind.values():
            exp.delete_expectations(owner)
