"""
Identities of remote resources.

An identity is one of three value types. Equality and hashing are structural
and variant-aware: ``InternalId(1) != ExternalId("1")``, while two identities
built separately from the same value always compare equal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class InternalId:
    """Numeric id assigned by the remote store."""

    id: int

    def __str__(self) -> str:
        return str(self.id)


@dataclass(frozen=True)
class ExternalId:
    """Caller-assigned string id."""

    external_id: str

    def __str__(self) -> str:
        return self.external_id


@dataclass(frozen=True)
class InstanceId:
    """Namespaced instance id (space + external id)."""

    space: str
    external_id: str

    def __str__(self) -> str:
        return f"{self.space}:{self.external_id}"


Identity = Union[InternalId, ExternalId, InstanceId]


def identity_of(value: object) -> Optional[Identity]:
    """Build an identity from a raw id value.

    ``int`` maps to InternalId, ``str`` to ExternalId, a ``{"space", "externalId"}``
    mapping to InstanceId. Existing identities are returned as-is, ``None``
    stays ``None``.
    """
    if value is None:
        return None
    if isinstance(value, (InternalId, ExternalId, InstanceId)):
        return value
    # bool is an int subclass but never a valid id
    if isinstance(value, bool):
        raise TypeError(f"Cannot build identity from {value!r}")
    if isinstance(value, int):
        return InternalId(value)
    if isinstance(value, str):
        return ExternalId(value)
    if isinstance(value, dict) and "space" in value and "externalId" in value:
        return InstanceId(str(value["space"]), str(value["externalId"]))
    raise TypeError(f"Cannot build identity from {value!r}")


@dataclass
class WriteItem(Generic[T]):
    """A payload addressed to one identity, e.g. a list of datapoints for one time series."""

    id: Identity
    payload: list[T] = field(default_factory=list)

    @property
    def units(self) -> int:
        return len(self.payload)
