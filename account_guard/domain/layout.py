"""
Record layouts: explicit byte-level descriptors for decoded account data.

A RecordLayout lists named fields with fixed-width types. Fields are packed
little-endian at sequential offsets unless an explicit offset is given.
Supported types:

- ``u8 u16 u32 u64 u128 i8 i16 i32 i64 i128``: fixed-width integers
- ``bool``: one byte, non-zero is true
- ``pubkey``: 32 raw bytes
- ``bytes[N]``: N raw bytes
- ``option<T>``: a one-byte tag (0 = absent) followed by a slot for T
- a nested RecordLayout

Decoding yields plain dicts (nested records are nested dicts, absent options
are None); encoding takes the same shape back.
"""

import re
import struct
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from solders.pubkey import Pubkey

from account_guard.core.errors import LayoutError
from account_guard.domain.pubkey import PUBKEY_LENGTH


class TypeKind(str, Enum):
    INT = "int"
    BOOL = "bool"
    PUBKEY = "pubkey"
    BYTES = "bytes"
    OPTION = "option"
    RECORD = "record"


_INT_TYPES = {
    "u8": (1, False),
    "u16": (2, False),
    "u32": (4, False),
    "u64": (8, False),
    "u128": (16, False),
    "i8": (1, True),
    "i16": (2, True),
    "i32": (4, True),
    "i64": (8, True),
    "i128": (16, True),
}

_STRUCT_CODES = {
    (1, False): "<B",
    (2, False): "<H",
    (4, False): "<I",
    (8, False): "<Q",
    (1, True): "<b",
    (2, True): "<h",
    (4, True): "<i",
    (8, True): "<q",
}

_BYTES_RE = re.compile(r"^bytes\[(\d+)\]$")
_OPTION_RE = re.compile(r"^option<(.+)>$")
_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class FieldType:
    """
    Parsed field type.

    ``width`` is the byte width for integers and byte arrays, ``signed``
    applies to integers, ``inner`` to options, ``record`` to nested records.
    """

    kind: TypeKind
    width: int = 0
    signed: bool = False
    inner: "FieldType | None" = None
    record: "RecordLayout | None" = None
    name: str = ""

    @property
    def size(self) -> int:
        match self.kind:
            case TypeKind.INT | TypeKind.BYTES:
                return self.width
            case TypeKind.BOOL:
                return 1
            case TypeKind.PUBKEY:
                return PUBKEY_LENGTH
            case TypeKind.OPTION:
                return 1 + self.inner.size
            case TypeKind.RECORD:
                return self.record.size
        raise LayoutError(f"Unknown field type kind {self.kind}")

    @property
    def is_u8(self) -> bool:
        return self.kind == TypeKind.INT and self.width == 1 and not self.signed

    def describe(self) -> str:
        if self.kind == TypeKind.OPTION:
            return f"option<{self.inner.describe()}>"
        if self.kind == TypeKind.RECORD:
            return self.record.name
        return self.name

    # ------------------------------------------------------------------
    # Codec
    # ------------------------------------------------------------------

    def decode(self, buffer: bytes | bytearray | memoryview, offset: int) -> Any:
        match self.kind:
            case TypeKind.INT:
                raw = bytes(buffer[offset : offset + self.width])
                code = _STRUCT_CODES.get((self.width, self.signed))
                if code is not None:
                    return struct.unpack(code, raw)[0]
                return int.from_bytes(raw, "little", signed=self.signed)
            case TypeKind.BOOL:
                return buffer[offset] != 0
            case TypeKind.PUBKEY:
                return Pubkey.from_bytes(bytes(buffer[offset : offset + PUBKEY_LENGTH]))
            case TypeKind.BYTES:
                return bytes(buffer[offset : offset + self.width])
            case TypeKind.OPTION:
                if buffer[offset] == 0:
                    return None
                return self.inner.decode(buffer, offset + 1)
            case TypeKind.RECORD:
                return self.record.decode(buffer, offset)
        raise LayoutError(f"Unknown field type kind {self.kind}")

    def encode(self, value: Any, path: str) -> bytes:
        match self.kind:
            case TypeKind.INT:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise LayoutError(
                        f"Field '{path}' expects an integer", details={"field": path}
                    )
                bits = self.width * 8
                lo = -(1 << (bits - 1)) if self.signed else 0
                hi = (1 << (bits - 1)) - 1 if self.signed else (1 << bits) - 1
                if not lo <= value <= hi:
                    raise LayoutError(
                        f"Field '{path}' value {value} out of range for {self.name}",
                        details={"field": path, "value": value},
                    )
                return value.to_bytes(self.width, "little", signed=self.signed)
            case TypeKind.BOOL:
                if not isinstance(value, bool):
                    raise LayoutError(f"Field '{path}' expects a bool", details={"field": path})
                return b"\x01" if value else b"\x00"
            case TypeKind.PUBKEY:
                if isinstance(value, Pubkey):
                    return bytes(value)
                if isinstance(value, (bytes, bytearray)) and len(value) == PUBKEY_LENGTH:
                    return bytes(value)
                raise LayoutError(f"Field '{path}' expects a pubkey", details={"field": path})
            case TypeKind.BYTES:
                if not isinstance(value, (bytes, bytearray)):
                    raise LayoutError(f"Field '{path}' expects bytes", details={"field": path})
                if len(value) > self.width:
                    raise LayoutError(
                        f"Field '{path}' holds at most {self.width} bytes, got {len(value)}",
                        details={"field": path},
                    )
                return bytes(value).ljust(self.width, b"\x00")
            case TypeKind.OPTION:
                if value is None:
                    return b"\x00" * self.size
                return b"\x01" + self.inner.encode(value, path)
            case TypeKind.RECORD:
                if not isinstance(value, Mapping):
                    raise LayoutError(f"Field '{path}' expects a record", details={"field": path})
                return self.record.encode(value, prefix=f"{path}.")
        raise LayoutError(f"Unknown field type kind {self.kind}")

    def zero_value(self) -> Any:
        match self.kind:
            case TypeKind.INT:
                return 0
            case TypeKind.BOOL:
                return False
            case TypeKind.PUBKEY:
                return Pubkey.default()
            case TypeKind.BYTES:
                return b"\x00" * self.width
            case TypeKind.OPTION:
                return None
            case TypeKind.RECORD:
                return {f.name: f.type.zero_value() for f in self.record.fields}
        raise LayoutError(f"Unknown field type kind {self.kind}")


def parse_field_type(spec: "str | RecordLayout | FieldType") -> FieldType:
    """
    Parse a field type descriptor.

    Args:
        spec: A type string such as ``"u64"``, ``"option<pubkey>"``,
              ``"bytes[16]"``, a nested RecordLayout, or an already-parsed type

    Raises:
        LayoutError: If the descriptor is not recognised
    """
    if isinstance(spec, FieldType):
        return spec
    if isinstance(spec, RecordLayout):
        return FieldType(kind=TypeKind.RECORD, record=spec, name=spec.name)
    if not isinstance(spec, str):
        raise LayoutError(f"Unsupported field type descriptor: {spec!r}")

    text = spec.strip()
    if text in _INT_TYPES:
        width, signed = _INT_TYPES[text]
        return FieldType(kind=TypeKind.INT, width=width, signed=signed, name=text)
    if text == "bool":
        return FieldType(kind=TypeKind.BOOL, name=text)
    if text == "pubkey":
        return FieldType(kind=TypeKind.PUBKEY, name=text)

    match = _BYTES_RE.match(text)
    if match:
        width = int(match.group(1))
        if width <= 0:
            raise LayoutError(f"Byte array width must be positive: {text}")
        return FieldType(kind=TypeKind.BYTES, width=width, name=text)

    match = _OPTION_RE.match(text)
    if match:
        inner = parse_field_type(match.group(1))
        if inner.kind == TypeKind.OPTION:
            raise LayoutError(f"Nested options are not supported: {text}")
        return FieldType(kind=TypeKind.OPTION, inner=inner, name=text)

    raise LayoutError(f"Unknown field type: {text}", details={"type": text})


@dataclass(frozen=True)
class FieldSpec:
    """A named field; ``offset`` of None means directly after the previous field."""

    name: str
    type: Union[str, "RecordLayout", FieldType]
    offset: int | None = None


@dataclass(frozen=True)
class LayoutField:
    name: str
    type: FieldType
    offset: int

    @property
    def end(self) -> int:
        return self.offset + self.type.size


@dataclass(frozen=True)
class RecordLayout:
    """
    Fixed-size record layout.

    Build with ``RecordLayout.build(name, fields)``; ``fields`` may be
    FieldSpec instances or ``(name, type)`` / ``(name, type, offset)`` tuples.
    """

    name: str
    fields: tuple[LayoutField, ...]
    size: int
    _index: dict[str, LayoutField] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def build(
        cls,
        name: str,
        fields: Iterable[FieldSpec | tuple],
        size: int | None = None,
    ) -> "RecordLayout":
        """
        Resolve field offsets and validate the layout.

        Args:
            name: Record type name (also used for the account discriminator)
            fields: Field descriptors in declaration order
            size: Optional explicit record size; must cover every field

        Raises:
            LayoutError: On duplicate or malformed names, unknown types,
                         negative offsets, or an explicit size that is too small
        """
        resolved: list[LayoutField] = []
        index: dict[str, LayoutField] = {}
        cursor = 0
        for raw in fields:
            spec = raw if isinstance(raw, FieldSpec) else FieldSpec(*raw)
            if not _FIELD_NAME_RE.match(spec.name) or spec.name.startswith("__"):
                raise LayoutError(
                    f"Invalid field name '{spec.name}' in layout '{name}'",
                    details={"layout": name, "field": spec.name},
                )
            if spec.name in index:
                raise LayoutError(
                    f"Duplicate field '{spec.name}' in layout '{name}'",
                    details={"layout": name, "field": spec.name},
                )
            ftype = parse_field_type(spec.type)
            offset = cursor if spec.offset is None else spec.offset
            if offset < 0:
                raise LayoutError(
                    f"Negative offset for field '{spec.name}' in layout '{name}'",
                    details={"layout": name, "field": spec.name},
                )
            layout_field = LayoutField(name=spec.name, type=ftype, offset=offset)
            resolved.append(layout_field)
            index[spec.name] = layout_field
            cursor = layout_field.end

        computed = max((f.end for f in resolved), default=0)
        if size is None:
            size = computed
        elif size < computed:
            raise LayoutError(
                f"Layout '{name}' declares size {size} but fields need {computed} bytes",
                details={"layout": name, "size": size, "required": computed},
            )
        return cls(name=name, fields=tuple(resolved), size=size, _index=index)

    def get(self, name: str) -> LayoutField | None:
        return self._index.get(name)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def decode(self, buffer: bytes | bytearray | memoryview, offset: int = 0) -> dict[str, Any]:
        """
        Decode the record starting at ``offset``.

        Raises:
            LayoutError: If the buffer is shorter than the record
        """
        if len(buffer) - offset < self.size:
            raise LayoutError(
                f"Buffer too small for '{self.name}': need {self.size} bytes at offset "
                f"{offset}, have {max(len(buffer) - offset, 0)}",
                details={"layout": self.name, "size": self.size},
            )
        return {f.name: f.type.decode(buffer, offset + f.offset) for f in self.fields}

    def encode(self, values: Mapping[str, Any], prefix: str = "") -> bytes:
        """
        Encode a record; fields missing from ``values`` are zero-filled.

        Raises:
            LayoutError: On unknown field names or values that do not fit
        """
        unknown = set(values) - set(self._index)
        if unknown:
            raise LayoutError(
                f"Unknown fields for '{self.name}': {sorted(unknown)}",
                details={"layout": self.name, "fields": sorted(unknown)},
            )
        out = bytearray(self.size)
        for f in self.fields:
            if f.name not in values:
                continue
            out[f.offset : f.end] = f.type.encode(values[f.name], f"{prefix}{f.name}")
        return bytes(out)

    def encode_into(self, buffer: bytearray, values: Mapping[str, Any], offset: int = 0) -> None:
        """Write only the given fields into ``buffer``, leaving other bytes untouched."""
        for name, value in values.items():
            f = self._index.get(name)
            if f is None:
                raise LayoutError(
                    f"Unknown field '{name}' for '{self.name}'",
                    details={"layout": self.name, "field": name},
                )
            start = offset + f.offset
            buffer[start : start + f.type.size] = f.type.encode(value, name)

    def zero_values(self) -> dict[str, Any]:
        return {f.name: f.type.zero_value() for f in self.fields}
