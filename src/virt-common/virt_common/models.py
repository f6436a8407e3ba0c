from typing import Any, Mapping, Optional

from kubernetes.client import V1Affinity, V1ObjectMeta
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from virt_common.constants import (
    INSTALL_STRATEGY_IDENTIFIER_ANNOTATION,
    INSTALL_STRATEGY_REGISTRY_ANNOTATION,
    INSTALL_STRATEGY_VERSION_ANNOTATION,
)
from virt_common.k8s import annotations_of, serializer


def _deserialize(value: Mapping, kind: str):
    # pydantic only reports ValueError as a validation error.
    try:
        return serializer.deserialize(dict(value), kind)
    except (TypeError, AttributeError) as exc:
        raise ValueError(f"invalid {kind}: {exc}") from exc


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


class VersionTag(BaseModel):
    """The (image tag, image registry, install id) triple that produced a managed object."""

    model_config = ConfigDict(frozen=True)

    image_tag: str
    image_registry: str
    install_id: str

    @classmethod
    def from_meta(cls, meta: Optional[V1ObjectMeta]) -> Optional["VersionTag"]:
        """Read the version annotations; None unless all three are present."""
        annotations = annotations_of(meta)
        try:
            return cls(
                image_tag=annotations[INSTALL_STRATEGY_VERSION_ANNOTATION],
                image_registry=annotations[INSTALL_STRATEGY_REGISTRY_ANNOTATION],
                install_id=annotations[INSTALL_STRATEGY_IDENTIFIER_ANNOTATION],
            )
        except KeyError:
            return None

    def to_annotations(self) -> dict[str, str]:
        return {
            INSTALL_STRATEGY_VERSION_ANNOTATION: self.image_tag,
            INSTALL_STRATEGY_REGISTRY_ANNOTATION: self.image_registry,
            INSTALL_STRATEGY_IDENTIFIER_ANNOTATION: self.install_id,
        }

    def __str__(self) -> str:
        return f"{self.image_registry}:{self.image_tag} ({self.install_id})"


class NodePlacement(_CamelModel):
    """Where a KubeVirt component is allowed to run."""

    node_selector: dict[str, str] = {}
    affinity: Optional[V1Affinity] = None

    @field_validator("node_selector", mode="before")
    @classmethod
    def _null_selector(cls, v):
        return v or {}

    @field_validator("affinity", mode="before")
    @classmethod
    def _deserialize_affinity(cls, v):
        if isinstance(v, Mapping):
            return _deserialize(v, "V1Affinity")
        return v


class ComponentConfig(_CamelModel):
    node_placement: Optional[NodePlacement] = None


class KubeVirtSpec(_CamelModel):
    image_tag: str = ""
    image_registry: str = ""
    workloads: Optional[ComponentConfig] = None


class KubeVirtStatus(_CamelModel):
    phase: Optional[str] = None
    target_kubevirt_version: Optional[str] = Field(default=None, alias="targetKubeVirtVersion")
    target_kubevirt_registry: Optional[str] = Field(default=None, alias="targetKubeVirtRegistry")
    target_deployment_id: Optional[str] = Field(default=None, alias="targetDeploymentID")
    observed_kubevirt_version: Optional[str] = Field(default=None, alias="observedKubeVirtVersion")
    observed_kubevirt_registry: Optional[str] = Field(default=None, alias="observedKubeVirtRegistry")
    observed_deployment_id: Optional[str] = Field(default=None, alias="observedDeploymentID")


class KubeVirt(_CamelModel):
    """
    The cluster wide KubeVirt installation resource.

    Only the fields the admitter and the operator read are modelled; everything
    else in the custom resource is ignored.
    """

    api_version: str = "kubevirt.io/v1"
    kind: str = "KubeVirt"
    metadata: V1ObjectMeta = Field(default_factory=V1ObjectMeta)
    spec: KubeVirtSpec = Field(default_factory=KubeVirtSpec)
    status: KubeVirtStatus = Field(default_factory=KubeVirtStatus)

    @field_validator("metadata", mode="before")
    @classmethod
    def _deserialize_metadata(cls, v):
        if v is None:
            return V1ObjectMeta()
        if isinstance(v, Mapping):
            return _deserialize(v, "V1ObjectMeta")
        return v

    @field_validator("spec", "status", mode="before")
    @classmethod
    def _null_section(cls, v):
        return v if v is not None else {}

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "KubeVirt":
        return cls.model_validate(obj)

    @property
    def name(self) -> Optional[str]:
        return self.metadata.name

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.namespace

    @property
    def key(self) -> str:
        """Owner key used for expectations: ``namespace/name``."""
        if self.metadata.namespace:
            return f"{self.metadata.namespace}/{self.metadata.name}"
        return self.metadata.name

    @property
    def generation(self) -> int:
        return self.metadata.generation or 0

    @property
    def workloads_placement(self) -> Optional[NodePlacement]:
        if self.spec.workloads is None:
            return None
        return self.spec.workloads.node_placement

    @property
    def target_version(self) -> VersionTag:
        return VersionTag(
            image_tag=self.status.target_kubevirt_version or "",
            image_registry=self.status.target_kubevirt_registry or "",
            install_id=self.status.target_deployment_id or "",
        )
