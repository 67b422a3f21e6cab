"""Structural diff of two object snapshots.

Produces JSON Patch operations (RFC 6902) addressed by JSON pointers
(RFC 6901), drops bookkeeping churn under ``/metadata`` and ``/status``, and
reduces what is left to a ``{pointer: {"old": ..., "new": ...}}`` change set.

Sequences are aligned with :class:`difflib.SequenceMatcher` over the
canonical encoding of each element, so inserting one container in the middle
of a list yields a single positional ``add`` rather than a ``replace`` for
every later index. Such an ``add`` carries the element previously held at
that index of the aligned prior sequence; a new mapping key carries nothing.
"""

from __future__ import annotations

import json
from difflib import SequenceMatcher
from typing import Any

from jsonpointer import EndOfList, JsonPointer, resolve_pointer

from kubedelta.models.resources import MISSING, ChangeOperation, ChangeSet, FieldChange, OpType

IGNORED_ROOTS: frozenset[str] = frozenset({"metadata", "status"})


class SerializationError(ValueError):
    """Raised when a snapshot cannot be reduced to a plain JSON tree."""


def canonicalize(obj: Any) -> Any:
    """Return *obj* as a plain JSON tree with mapping keys sorted.

    Raises:
        SerializationError: if *obj* holds values JSON cannot encode.
    """
    try:
        return json.loads(json.dumps(obj, sort_keys=True, allow_nan=False))
    except (TypeError, ValueError) as exc:
        raise SerializationError(str(exc)) from exc


def _pointer(parts: list[str]) -> str:
    return JsonPointer.from_parts(parts).path


def _resolve(doc: Any, path: str) -> Any:
    value = resolve_pointer(doc, path, MISSING)
    # A "-" segment on a list resolves to the end-of-list marker, not a value.
    return MISSING if isinstance(value, EndOfList) else value


def _same_scalar(old: Any, new: Any) -> bool:
    # True == 1 in Python; JSON keeps booleans and numbers apart.
    if isinstance(old, bool) or isinstance(new, bool):
        return type(old) is type(new) and old == new
    if isinstance(old, int | float) and isinstance(new, int | float):
        return old == new
    return type(old) is type(new) and old == new


class _PatchBuilder:
    """Accumulates operations while walking two trees in parallel."""

    def __init__(self) -> None:
        self.ops: list[ChangeOperation] = []

    def add(self, parts: list[str], value: Any, old: Any = MISSING) -> None:
        self.ops.append(ChangeOperation(op=OpType.ADD, path=_pointer(parts), value=value, old_value=old))

    def remove(self, parts: list[str], old: Any) -> None:
        self.ops.append(ChangeOperation(op=OpType.REMOVE, path=_pointer(parts), old_value=old))

    def replace(self, parts: list[str], old: Any, new: Any) -> None:
        self.ops.append(ChangeOperation(op=OpType.REPLACE, path=_pointer(parts), value=new, old_value=old))

    def compare(self, old: Any, new: Any, parts: list[str]) -> None:
        if isinstance(old, dict) and isinstance(new, dict):
            self._compare_maps(old, new, parts)
        elif isinstance(old, list) and isinstance(new, list):
            self._compare_sequences(old, new, parts)
        elif isinstance(old, dict | list) or isinstance(new, dict | list):
            if old != new:
                self.replace(parts, old, new)
        elif not _same_scalar(old, new):
            self.replace(parts, old, new)

    def _compare_maps(self, old: dict[str, Any], new: dict[str, Any], parts: list[str]) -> None:
        for key in sorted(old.keys() | new.keys()):
            if key not in new:
                self.remove([*parts, key], old[key])
            elif key not in old:
                self.add([*parts, key], new[key])
            else:
                self.compare(old[key], new[key], [*parts, key])

    def _compare_sequences(self, old: list[Any], new: list[Any], parts: list[str]) -> None:
        old_keys = [json.dumps(item, sort_keys=True) for item in old]
        new_keys = [json.dumps(item, sort_keys=True) for item in new]
        matcher = SequenceMatcher(a=old_keys, b=new_keys, autojunk=False)

        # Operations apply in order, so the document prefix before position j1
        # already equals new[:j1] when each opcode is visited.
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                continue
            paired = min(i2 - i1, j2 - j1)
            for k in range(paired):
                self.compare(old[i1 + k], new[j1 + k], [*parts, str(j1 + k)])
            for k in range(paired, j2 - j1):
                j = j1 + k
                self.add([*parts, str(j)], new[j], old[j] if j < len(old) else MISSING)
            for k in range(paired, i2 - i1):
                self.remove([*parts, str(j1 + paired)], old[i1 + k])


def compute_patch(prior: Any, incoming: Any) -> list[ChangeOperation]:
    """Return the operations that turn *prior* into *incoming*.

    Both arguments must already be canonical JSON trees.
    """
    builder = _PatchBuilder()
    builder.compare(prior, incoming, [])
    return builder.ops


def filter_patch(ops: list[ChangeOperation]) -> list[ChangeOperation]:
    """Drop operations rooted under ``/metadata`` or ``/status``."""
    return [op for op in ops if op.first_segment() not in IGNORED_ROOTS]


def collect_changes(ops: list[ChangeOperation], incoming: Any) -> ChangeSet:
    """Resolve surviving operations into ``{pointer: {"old", "new"}}``.

    Only ``replace`` operations and ``add`` operations that carry a previous
    value are considered. Entries whose old value is null or absent are true
    insertions, not changes, and are discarded.

    The old value is the one recorded on the operation, taken from the aligned
    prior element rather than looked up by pointer in the prior document: once
    a sequence insertion has shifted positions, the same pointer names a
    different element there. New values are resolved against *incoming*.
    """
    changes: ChangeSet = {}
    for op in ops:
        if op.op is OpType.REPLACE or (op.op is OpType.ADD and op.has_old_value):
            old_value = op.old_value
            if old_value is MISSING or old_value is None:
                continue
            new_value = _resolve(incoming, op.path)
            change = FieldChange(op.path, old_value, None if new_value is MISSING else new_value)
            changes[change.path] = change.as_dict()
    return changes


def diff(prior: Any, incoming: Any) -> ChangeSet:
    """Field-level change set between two snapshots; empty means "no change".

    Raises:
        SerializationError: if either snapshot is not JSON-encodable.
    """
    prior_doc = canonicalize(prior)
    incoming_doc = canonicalize(incoming)
    ops = filter_patch(compute_patch(prior_doc, incoming_doc))
    if not ops:
        return {}
    return collect_changes(ops, incoming_doc)
