from typing import Any, Mapping, Optional

from kubernetes.client.rest import ApiException
from loguru import logger
from pydantic import ValidationError
from urllib3.exceptions import HTTPError

from virt_api.config import settings
from virt_api.models import NodeLabelState
from virt_api.selector import build_selector
from virt_api.webhooks import (
    AdmissionResponse,
    get_admission_review_node,
    passing_response,
    to_admission_response_error,
)
from virt_common.client import KubevirtClient
from virt_common.exceptions import AdmissionReviewError, MultipleInstallsError, SelectorError
from virt_common.models import NodePlacement

NODE_LABEL_CHANGE_DENIED = "you must remove all vms from this node before changing the label"


class NodeAdmitter:
    """
    Rejects node label changes that would take virt-handler away from a node
    that still runs VMs.
    """

    def __init__(self, client: KubevirtClient, launcher_label_selector: Optional[str] = None):
        self.client = client
        self.launcher_label_selector = launcher_label_selector or settings.launcher_label_selector

    def admit(self, review: Mapping[str, Any]) -> AdmissionResponse:
        request = review.get("request") or {}
        try:
            new_node, old_node = get_admission_review_node(review)
        except AdmissionReviewError as exc:
            logger.warning(f"Rejecting malformed node admission review {request.get('uid')}: {exc}")
            response = to_admission_response_error(exc)
        else:
            response = self.decide(NodeLabelState.from_node(old_node), NodeLabelState.from_node(new_node))
        response.uid = request.get("uid")
        return response

    def decide(self, old: Optional[NodeLabelState], new: NodeLabelState) -> AdmissionResponse:
        # Not an update, nothing can be stranded.
        if old is None:
            return passing_response()

        if old.labels == new.labels:
            return passing_response()

        try:
            has_vm = self.is_node_running_vm(new.name)
        except (ApiException, HTTPError) as exc:
            logger.error(f"Failed to list VM pods on node {new.name}: {exc}")
            return to_admission_response_error(exc)

        # Without VMs it does not matter if virt-handler goes away.
        if not has_vm:
            return passing_response()

        try:
            matches = self.node_will_still_run_virt_handler(new)
        except MultipleInstallsError as exc:
            logger.error(f"Found {exc.count} KubeVirt installs while admitting node {new.name}")
            return to_admission_response_error(exc)
        except SelectorError as exc:
            logger.warning(f"Invalid workloads node placement, denying label change on {new.name}: {exc}")
            return to_admission_response_error(exc)
        except (ApiException, HTTPError, ValidationError) as exc:
            logger.error(f"Failed to read KubeVirt installs while admitting node {new.name}: {exc}")
            return to_admission_response_error(exc)

        if not matches:
            logger.info(f"Denying label change on node {new.name}: VMs would lose virt-handler")
            return to_admission_response_error(NODE_LABEL_CHANGE_DENIED)

        return passing_response()

    def is_node_running_vm(self, node_name: str) -> bool:
        pods = self.client.list_pods_on_node(node_name, self.launcher_label_selector)
        return len(pods) > 0

    def workloads_placement(self) -> Optional[NodePlacement]:
        installs = self.client.list_kubevirts()
        if len(installs) > 1:
            raise MultipleInstallsError(len(installs))
        if not installs:
            return None
        return installs[0].workloads_placement

    def node_will_still_run_virt_handler(self, node: NodeLabelState) -> bool:
        placement = self.workloads_placement()
        # virt-handler runs everywhere
        if placement is None:
            return True

        selector = build_selector(placement)
        logger.debug(f"Matching node {node.name} against workloads selector {selector}")
        return selector.matches(node.labels)
