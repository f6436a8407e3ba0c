from typing import Optional


class KubernetesClientError(Exception):
    """Raised when the kubernetes client cannot be configured."""


class AdmissionReviewError(Exception):
    """The admission review payload has the wrong shape."""


class MultipleInstallsError(Exception):
    def __init__(self, count: int):
        self.count = count
        super().__init__("you can not have more than one KubeVirt install")


class SelectorError(ValueError):
    """A label requirement could not be constructed."""


class ExpectationsError(Exception):
    """Expectations were lowered below what was raised."""


class ObjectSyncError(Exception):
    """A single managed object failed to reconcile."""

    def __init__(self, action: str, kind: str, name: str, namespace: Optional[str], cause: Exception):
        self.action = action
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.cause = cause
        identity = f"{namespace}/{name}" if namespace else name
        super().__init__(f"unable to {action} {kind} {identity}: {cause}")


class ReconcileError(Exception):
    """Aggregate of every per-object failure seen during a reconciliation pass."""

    def __init__(self, errors: list[ObjectSyncError]):
        self.errors = list(errors)
        summary = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{len(self.errors)} object(s) failed to reconcile: {summary}")
