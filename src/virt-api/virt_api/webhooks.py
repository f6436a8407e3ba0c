"""
Helpers shared by validating admitters: request checks, payload decoding and
response construction.
"""

import json
from typing import Any, Mapping, Optional, Tuple, Union

from kubernetes.client import V1Node
from pydantic import BaseModel

from virt_common.constants import NODE_GROUP_VERSION_RESOURCE
from virt_common.exceptions import AdmissionReviewError
from virt_common.k8s import serializer

ADMISSION_API_VERSION = "admission.k8s.io/v1"
UPDATE = "UPDATE"


class AdmissionResponse(BaseModel):
    uid: Optional[str] = None
    allowed: bool
    message: Optional[str] = None
    code: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        response: dict[str, Any] = {"uid": self.uid, "allowed": self.allowed}
        if self.message is not None:
            status: dict[str, Any] = {"message": self.message}
            if self.code is not None:
                status["code"] = self.code
            response["status"] = status
        return response


def passing_response() -> AdmissionResponse:
    return AdmissionResponse(allowed=True)


def to_admission_response_error(err: Union[Exception, str]) -> AdmissionResponse:
    return AdmissionResponse(allowed=False, message=str(err), code=400)


def review_response(response: AdmissionResponse) -> dict[str, Any]:
    """Wrap a response into an AdmissionReview envelope."""
    return {
        "apiVersion": ADMISSION_API_VERSION,
        "kind": "AdmissionReview",
        "response": response.to_dict(),
    }


def validate_request_resource(resource: Optional[Mapping[str, Any]], group: str, name: str) -> bool:
    if not resource:
        return False
    return resource.get("group", "") == group and resource.get("resource") == name


def _decode_object(raw: Any, kind: str) -> dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise AdmissionReviewError(f"failed to decode {kind}: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise AdmissionReviewError(f"expected a {kind} object, got {type(raw).__name__}")
    if raw.get("kind", kind) != kind:
        raise AdmissionReviewError(f"expected a {kind} object, got {raw.get('kind')}")
    return dict(raw)


def _deserialize_node(raw: Any) -> V1Node:
    obj = _decode_object(raw, "Node")
    try:
        return serializer.deserialize(obj, "V1Node")
    except (ValueError, TypeError, AttributeError) as exc:
        raise AdmissionReviewError(f"failed to decode Node: {exc}") from exc


def get_admission_review_node(review: Mapping[str, Any]) -> Tuple[V1Node, Optional[V1Node]]:
    """
    Decode the new node and, for updates, the old node from an admission review.

    Raises AdmissionReviewError when the review is not about nodes or a payload
    cannot be decoded.
    """
    request = review.get("request") or {}
    gvr = NODE_GROUP_VERSION_RESOURCE
    if not validate_request_resource(request.get("resource"), gvr.group, gvr.resource):
        raise AdmissionReviewError(f"expect resource to be '{gvr.resource}'")

    new_node = _deserialize_node(request.get("object"))

    if (request.get("operation") or "").upper() == UPDATE:
        old_node = _deserialize_node(request.get("oldObject"))
        return new_node, old_node

    return new_node, None
