from typing import Optional

from pydantic import Field

from virt_common.constants import MANAGED_BY_LABEL, MANAGED_BY_OPERATOR_VALUE
from virt_common.settings import VirtSettings


class OperatorSettings(VirtSettings):
    monitor_service_account: str = Field(
        default="kubevirt-monitoring",
        description="Service account whose RBAC only exists when service monitoring is available",
    )
    service_monitor_enabled: Optional[bool] = Field(
        default=None,
        description="Force service monitoring on or off; detected from the cluster when unset",
    )
    expectations_timeout: int = Field(default=300, description="Seconds before pending expectations expire")
    managed_label_selector: str = Field(
        default=f"{MANAGED_BY_LABEL}={MANAGED_BY_OPERATOR_VALUE}",
        description="Label selector used to list operator managed objects",
    )


settings = OperatorSettings()
