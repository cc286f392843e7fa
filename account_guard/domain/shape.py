"""
Static shapes of expression scopes.

A shape describes field names and value kinds without any live data. The
shape checker resolves access paths against a ContextShape once, at policy
definition time, so evaluation never meets a kind mismatch.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from solders.pubkey import Pubkey

from account_guard.domain.accounts import AccountHandle, TypedAccount
from account_guard.domain.enums import ValueKind
from account_guard.domain.layout import RecordLayout, TypeKind

# Pseudo-fields available on every account
OWNER_FIELD = "__owner"
LAMPORTS_FIELD = "__lamports"


@dataclass(frozen=True)
class ScalarShape:
    kind: ValueKind
    optional: bool = False


@dataclass(frozen=True)
class RecordShape:
    fields: tuple[tuple[str, "Shape"], ...]
    optional: bool = False

    def get(self, name: str) -> "Shape | None":
        for field_name, shape in self.fields:
            if field_name == name:
                return shape
        return None

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.fields]


@dataclass(frozen=True)
class AccountShape:
    """
    An account in scope. ``record`` is None for accounts without a layout;
    they still expose ``.key()`` and the pseudo-fields.
    """

    record: RecordShape | None = None
    optional: bool = False

    def get(self, name: str) -> "Shape | None":
        if self.record is not None:
            found = self.record.get(name)
            if found is not None:
                return found
        if name == OWNER_FIELD:
            return ScalarShape(ValueKind.PUBKEY)
        if name == LAMPORTS_FIELD:
            return ScalarShape(ValueKind.INT)
        return None


Shape = Union[ScalarShape, RecordShape, AccountShape]


@dataclass(frozen=True)
class ContextShape:
    """
    Named entries in scope, plus the name of the account being validated.

    Paths whose first segment is not an entry name resolve against the
    ``self_name`` entry's fields.
    """

    entries: tuple[tuple[str, Shape], ...]
    self_name: str | None = None

    @classmethod
    def of(cls, entries: Mapping[str, Shape], self_name: str | None = None) -> "ContextShape":
        return cls(entries=tuple(entries.items()), self_name=self_name)

    def get(self, name: str) -> Shape | None:
        for entry_name, shape in self.entries:
            if entry_name == name:
                return shape
        return None

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.entries]

    def with_self(self, self_name: str | None) -> "ContextShape":
        return ContextShape(entries=self.entries, self_name=self_name)

    def with_entry(self, name: str, shape: Shape) -> "ContextShape":
        entries = tuple((n, s) for n, s in self.entries if n != name) + ((name, shape),)
        return ContextShape(entries=entries, self_name=self.self_name)


def shape_from_layout(layout: RecordLayout, optional: bool = False) -> RecordShape:
    """Derive the static shape of a record layout."""
    fields: list[tuple[str, Shape]] = []
    for f in layout.fields:
        ftype = f.type
        is_optional = False
        if ftype.kind == TypeKind.OPTION:
            ftype = ftype.inner
            is_optional = True
        match ftype.kind:
            case TypeKind.INT:
                fields.append((f.name, ScalarShape(ValueKind.INT, is_optional)))
            case TypeKind.BOOL:
                fields.append((f.name, ScalarShape(ValueKind.BOOL, is_optional)))
            case TypeKind.PUBKEY:
                fields.append((f.name, ScalarShape(ValueKind.PUBKEY, is_optional)))
            case TypeKind.BYTES:
                fields.append((f.name, ScalarShape(ValueKind.BYTES, is_optional)))
            case TypeKind.RECORD:
                fields.append((f.name, shape_from_layout(ftype.record, is_optional)))
    return RecordShape(fields=tuple(fields), optional=optional)


def account_shape(layout: RecordLayout | None, optional: bool = False) -> AccountShape:
    record = shape_from_layout(layout) if layout is not None else None
    return AccountShape(record=record, optional=optional)


def shape_from_sample(value: Any) -> Shape:
    """
    Infer a shape from a sample value.

    Used to shape-check expressions against plain dict contexts such as
    ``{"a": {"value": 10, "flag": True}, "b": 3}``.

    Raises:
        ValueError: If the sample holds a value whose kind cannot be inferred
    """
    if isinstance(value, TypedAccount):
        record = shape_from_layout(value.layout) if value.layout is not None else None
        return AccountShape(record=record)
    if isinstance(value, AccountHandle):
        return AccountShape()
    if isinstance(value, bool):
        return ScalarShape(ValueKind.BOOL)
    if isinstance(value, int):
        return ScalarShape(ValueKind.INT)
    if isinstance(value, Pubkey):
        return ScalarShape(ValueKind.PUBKEY)
    if isinstance(value, (bytes, bytearray, str)):
        return ScalarShape(ValueKind.BYTES)
    if isinstance(value, Mapping):
        return RecordShape(
            fields=tuple((str(k), shape_from_sample(v)) for k, v in value.items())
        )
    raise ValueError(f"cannot infer a shape from {type(value).__name__}")


def context_shape_from_sample(
    sample: Mapping[str, Any], self_name: str | None = None
) -> ContextShape:
    return ContextShape.of(
        {name: shape_from_sample(value) for name, value in sample.items()}, self_name=self_name
    )
