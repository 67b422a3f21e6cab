"""Resource identity and structural change data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class _Missing:
    """Sentinel for "nothing was at this path"."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class InvalidGroupVersionError(ValueError):
    """Raised when a discovery groupVersion string cannot be parsed."""


@dataclass(frozen=True)
class ResourceKind:
    """A watchable kind, identified by (group, version, resource).

    The core group is the empty string, so ``pods`` is ``("", "v1", "pods")``.
    """

    group: str
    version: str
    resource: str

    @classmethod
    def from_group_version(cls, group_version: str, resource: str) -> ResourceKind:
        """Build a kind from a discovery ``groupVersion`` such as ``apps/v1``.

        Raises:
            InvalidGroupVersionError: for empty parts or more than one ``/``.
        """
        parts = group_version.split("/")
        if len(parts) == 1 and parts[0]:
            return cls(group="", version=parts[0], resource=resource)
        if len(parts) == 2 and all(parts):
            return cls(group=parts[0], version=parts[1], resource=resource)
        raise InvalidGroupVersionError(f"unexpected GroupVersion string: {group_version!r}")

    @property
    def group_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def list_path(self) -> str:
        """Cluster-wide collection path on the API server."""
        if self.group:
            return f"/apis/{self.group}/{self.version}/{self.resource}"
        return f"/api/{self.version}/{self.resource}"

    def __str__(self) -> str:
        return f"{self.resource}.{self.group_version}"


def cache_key(resource: str, namespace: str, name: str) -> str:
    """Return ``[namespace/]resource/name``; cluster-scoped objects omit the namespace."""
    if namespace:
        return f"{namespace}/{resource}/{name}"
    return f"{resource}/{name}"


class OpType(StrEnum):
    """JSON Patch operation types produced by the diff engine."""

    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"


@dataclass(frozen=True)
class ChangeOperation:
    """A single JSON Patch operation.

    ``old_value`` is MISSING when nothing existed at ``path`` in the prior
    document; ``value`` is MISSING for removals.
    """

    op: OpType
    path: str
    value: object = MISSING
    old_value: object = MISSING

    @property
    def has_old_value(self) -> bool:
        return self.old_value is not MISSING

    def first_segment(self) -> str:
        return self.path.split("/", 2)[1] if self.path.startswith("/") else ""


@dataclass(frozen=True)
class FieldChange:
    """One surviving field change, addressed by JSON pointer."""

    path: str
    old: object
    new: object

    def as_dict(self) -> dict[str, object]:
        return {"old": self.old, "new": self.new}


ChangeSet = dict[str, dict[str, object]]
