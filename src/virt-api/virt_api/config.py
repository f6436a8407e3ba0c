from pydantic import Field

from virt_common.settings import VirtSettings


class ApiSettings(VirtSettings):
    launcher_label_selector: str = Field(
        default="kubevirt.io=virt-launcher",
        description="Label selector identifying VM launcher pods",
    )


settings = ApiSettings()
