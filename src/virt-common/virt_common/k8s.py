import inspect
import json
from types import SimpleNamespace
from typing import Any, Mapping, Optional

from kubernetes.client import ApiClient, V1ObjectMeta


class K8sSerializer:
    _instance = None
    _api_client = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def api_client(self):
        if self._api_client is None:
            self._api_client = ApiClient()
        return self._api_client

    def deserialize(self, obj: Any, kind: str):
        data = json.dumps(obj)
        if "content_type" in inspect.signature(self.api_client.deserialize).parameters:
            # kubernetes>=37 takes the raw response text and its content type.
            return self.api_client.deserialize(data, kind, "application/json")
        return self.api_client.deserialize(SimpleNamespace(data=data), kind)

    def serialize(self, obj: Any):
        return self.api_client.sanitize_for_serialization(obj)


serializer = K8sSerializer()


def meta_namespace_key(meta: V1ObjectMeta) -> str:
    """Cache key of an object: ``namespace/name``, or just ``name`` when cluster scoped."""
    if meta.namespace:
        return f"{meta.namespace}/{meta.name}"
    return meta.name


def object_key(obj: Any) -> str:
    return meta_namespace_key(obj.metadata)


def labels_of(meta: Optional[V1ObjectMeta]) -> dict[str, str]:
    if meta is None or not meta.labels:
        return {}
    return dict(meta.labels)


def annotations_of(meta: Optional[V1ObjectMeta]) -> Mapping[str, str]:
    if meta is None or not meta.annotations:
        return {}
    return meta.annotations
