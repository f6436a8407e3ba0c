from typing import Optional

from kubernetes.client import V1Node
from pydantic import BaseModel

from virt_common.k8s import labels_of


class NodeLabelState(BaseModel):
    """Snapshot of a node's name and labels as seen by one admission request."""

    name: str
    labels: dict[str, str] = {}

    @classmethod
    def from_node(cls, node: Optional[V1Node]) -> Optional["NodeLabelState"]:
        if node is None:
            return None
        meta = node.metadata
        return cls(name=(meta.name if meta else None) or "", labels=labels_of(meta))
