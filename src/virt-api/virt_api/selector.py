"""
Label selectors built from a KubeVirt node placement.

Requirements follow the upstream label selector rules: a selector is the
conjunction of its requirements, kept sorted by key, and the empty selector
matches every label set.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence, Union

from kubernetes.client import V1NodeSelectorTerm

from virt_common.exceptions import SelectorError
from virt_common.models import NodePlacement


class Operator(str, Enum):
    DOES_NOT_EXIST = "!"
    EQUALS = "="
    DOUBLE_EQUALS = "=="
    IN = "in"
    NOT_EQUALS = "!="
    NOT_IN = "notin"
    EXISTS = "exists"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"


# Node affinity operators -> selector operators.
NODE_SELECTOR_OPERATORS = {
    "In": Operator.IN,
    "NotIn": Operator.NOT_IN,
    "Exists": Operator.EXISTS,
    "DoesNotExist": Operator.DOES_NOT_EXIST,
    "Gt": Operator.GREATER_THAN,
    "Lt": Operator.LESS_THAN,
}

_QUALIFIED_NAME_MAX_LENGTH = 63
_LABEL_VALUE_MAX_LENGTH = 63
_DNS1123_SUBDOMAIN_MAX_LENGTH = 253

_QUALIFIED_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_LABEL_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
_DNS1123_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_INT64_RE = re.compile(r"^[+-]?[0-9]+$")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def operator(op: str) -> str:
    """Map a node selector operator to its selector operator, or "" when unknown."""
    selection = NODE_SELECTOR_OPERATORS.get(op)
    return selection.value if selection else ""


def _parse_int64(value: str) -> Optional[int]:
    if not _INT64_RE.match(value):
        return None
    number = int(value)
    if number < _INT64_MIN or number > _INT64_MAX:
        return None
    return number


def validate_label_key(key: str) -> list[str]:
    errors = []
    parts = key.split("/")
    if len(parts) == 1:
        name = parts[0]
    elif len(parts) == 2:
        prefix, name = parts
        if not prefix:
            errors.append("prefix part must be non-empty")
        elif len(prefix) > _DNS1123_SUBDOMAIN_MAX_LENGTH:
            errors.append(f"prefix part must be no more than {_DNS1123_SUBDOMAIN_MAX_LENGTH} characters")
        elif not _DNS1123_SUBDOMAIN_RE.match(prefix):
            errors.append("prefix part must be a lowercase RFC 1123 subdomain")
    else:
        return ["a qualified name must consist of alphanumeric characters, '-', '_' or '.', with an optional DNS subdomain prefix and '/'"]

    if not name:
        errors.append("name part must be non-empty")
    elif len(name) > _QUALIFIED_NAME_MAX_LENGTH:
        errors.append(f"name part must be no more than {_QUALIFIED_NAME_MAX_LENGTH} characters")
    elif not _QUALIFIED_NAME_RE.match(name):
        errors.append(
            "name part must consist of alphanumeric characters, '-', '_' or '.', "
            "and must start and end with an alphanumeric character"
        )
    return errors


def validate_label_value(value: str) -> list[str]:
    errors = []
    if len(value) > _LABEL_VALUE_MAX_LENGTH:
        errors.append(f"must be no more than {_LABEL_VALUE_MAX_LENGTH} characters")
    if not _LABEL_VALUE_RE.match(value):
        errors.append(
            "a valid label must be an empty string or consist of alphanumeric characters, "
            "'-', '_' or '.', and must start and end with an alphanumeric character"
        )
    return errors


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        has_key = self.key in labels
        if self.operator in (Operator.IN, Operator.EQUALS, Operator.DOUBLE_EQUALS):
            return has_key and labels[self.key] in self.values
        if self.operator in (Operator.NOT_IN, Operator.NOT_EQUALS):
            return not has_key or labels[self.key] not in self.values
        if self.operator == Operator.EXISTS:
            return has_key
        if self.operator == Operator.DOES_NOT_EXIST:
            return not has_key
        if self.operator in (Operator.GREATER_THAN, Operator.LESS_THAN):
            if not has_key:
                return False
            label_value = _parse_int64(labels[self.key])
            if label_value is None:
                return False
            bound = _parse_int64(self.values[0])
            if self.operator == Operator.GREATER_THAN:
                return label_value > bound
            return label_value < bound
        return False

    def __str__(self) -> str:
        if self.operator == Operator.DOES_NOT_EXIST:
            return f"!{self.key}"
        if self.operator == Operator.EXISTS:
            return self.key
        if self.operator in (Operator.IN, Operator.NOT_IN):
            return f"{self.key} {self.operator.value} ({','.join(sorted(self.values))})"
        if self.operator == Operator.GREATER_THAN:
            return f"{self.key}>{self.values[0]}"
        if self.operator == Operator.LESS_THAN:
            return f"{self.key}<{self.values[0]}"
        return f"{self.key}{self.operator.value}{self.values[0]}"


def new_requirement(key: str, op: Union[Operator, str], values: Optional[Iterable[str]] = None) -> Requirement:
    """
    Build a validated requirement.

    Raises SelectorError for an invalid key, an unrecognized operator, a value
    count that does not fit the operator, or an invalid value.
    """
    values = tuple(values or ())

    errors = validate_label_key(key)
    if errors:
        raise SelectorError(f"key: Invalid value: {key!r}: {'; '.join(errors)}")

    try:
        selection = Operator(op)
    except ValueError:
        raise SelectorError(f"operator '{op}' is not recognized") from None

    if selection in (Operator.IN, Operator.NOT_IN):
        if not values:
            raise SelectorError("values: for 'in', 'notin' operators, values set can't be empty")
    elif selection in (Operator.EQUALS, Operator.DOUBLE_EQUALS, Operator.NOT_EQUALS):
        if len(values) != 1:
            raise SelectorError("values: exact-match compatibility requires one single value")
    elif selection in (Operator.EXISTS, Operator.DOES_NOT_EXIST):
        if values:
            raise SelectorError("values: values set must be empty for exists and does not exist")
    elif selection in (Operator.GREATER_THAN, Operator.LESS_THAN):
        if len(values) != 1:
            raise SelectorError("values: for 'Gt', 'Lt' operators, exactly one value is required")
        if _parse_int64(values[0]) is None:
            raise SelectorError("values: for 'Gt', 'Lt' operators, the value must be an integer")

    for value in values:
        errors = validate_label_value(value)
        if errors:
            raise SelectorError(f"values: Invalid value: {value!r}: {'; '.join(errors)}")

    return Requirement(key=key, operator=selection, values=values)


class Selector:
    """An immutable, key-sorted conjunction of requirements."""

    def __init__(self, requirements: Iterable[Requirement] = ()):
        self._requirements = tuple(sorted(requirements, key=lambda r: r.key))

    @property
    def requirements(self) -> tuple[Requirement, ...]:
        return self._requirements

    def add(self, *requirements: Requirement) -> "Selector":
        return Selector(self._requirements + requirements)

    def empty(self) -> bool:
        return not self._requirements

    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        labels = labels or {}
        return all(r.matches(labels) for r in self._requirements)

    def __eq__(self, other) -> bool:
        return isinstance(other, Selector) and self._requirements == other._requirements

    def __hash__(self) -> int:
        return hash(self._requirements)

    def __str__(self) -> str:
        return ",".join(str(r) for r in self._requirements)

    def __repr__(self) -> str:
        return f"Selector({str(self)!r})"


def _required_terms(placement: NodePlacement) -> Sequence[V1NodeSelectorTerm]:
    affinity = placement.affinity
    if (
        affinity is None
        or affinity.node_affinity is None
        or affinity.node_affinity.required_during_scheduling_ignored_during_execution is None
    ):
        return []
    return affinity.node_affinity.required_during_scheduling_ignored_during_execution.node_selector_terms or []


def build_selector(placement: NodePlacement) -> Selector:
    """
    Translate a node placement into a selector.

    Node selector entries become equality requirements. Of the affinity, only
    the required node affinity is consulted; the match expressions of its terms
    are ANDed with the node selector. Preferred terms and match fields are
    ignored.
    """
    requirements = []
    for key, value in (placement.node_selector or {}).items():
        requirements.append(new_requirement(key, Operator.EQUALS, [value]))

    for term in _required_terms(placement):
        for expression in term.match_expressions or []:
            requirements.append(new_requirement(expression.key, operator(expression.operator), expression.values))

    return Selector(requirements)
