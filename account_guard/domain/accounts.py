"""
Account handles supplied by the host runtime, and their typed views.
"""

from dataclasses import dataclass, field
from typing import Any

from solders.pubkey import Pubkey

from account_guard.domain.layout import RecordLayout
from account_guard.domain.pubkey import to_pubkey

U64_MAX = (1 << 64) - 1


@dataclass(eq=False)
class AccountHandle:
    """
    One account as presented to an instruction.

    ``data`` is the live buffer; validation only reads it. Passing a
    bytearray shares it with the caller, so writes made by
    ``AccountType.initialize`` are visible to the host.
    """

    public_key: Pubkey
    owner_program: Pubkey
    balance: int = 0
    data: bytearray = field(default_factory=bytearray)
    is_signer: bool = False
    is_writable: bool = False
    is_executable: bool = False

    def __post_init__(self) -> None:
        self.public_key = to_pubkey(self.public_key)
        self.owner_program = to_pubkey(self.owner_program)
        if not isinstance(self.data, bytearray):
            self.data = bytearray(self.data)
        if isinstance(self.balance, bool) or not 0 <= self.balance <= U64_MAX:
            raise ValueError(f"balance must be a u64, got {self.balance!r}")

    @property
    def key(self) -> Pubkey:
        return self.public_key

    @property
    def data_len(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        flags = "".join(
            flag
            for flag, on in (
                ("s", self.is_signer),
                ("w", self.is_writable),
                ("x", self.is_executable),
            )
            if on
        )
        return (
            f"AccountHandle({self.public_key}, owner={self.owner_program}, "
            f"balance={self.balance}, data_len={len(self.data)}, flags='{flags}')"
        )


@dataclass(eq=False)
class TypedAccount:
    """
    An AccountHandle plus the decoded view of its record.

    ``data_offset`` is where the record starts inside ``handle.data``: 8 for
    discriminated layouts, 0 for raw ones. ``fields`` is empty when the
    account has no layout.
    """

    handle: AccountHandle
    layout: RecordLayout | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    data_offset: int = 0

    @property
    def public_key(self) -> Pubkey:
        return self.handle.public_key

    @property
    def key(self) -> Pubkey:
        return self.handle.public_key

    @property
    def owner_program(self) -> Pubkey:
        return self.handle.owner_program

    @property
    def balance(self) -> int:
        return self.handle.balance

    @property
    def data(self) -> bytearray:
        return self.handle.data

    @property
    def is_signer(self) -> bool:
        return self.handle.is_signer

    @property
    def is_writable(self) -> bool:
        return self.handle.is_writable

    @property
    def is_executable(self) -> bool:
        return self.handle.is_executable

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def write(self, **values: Any) -> None:
        """
        Encode ``values`` into the underlying buffer and refresh the view.

        Raises:
            LayoutError: On unknown fields or values that do not fit
            ValueError: If the account has no layout
        """
        if self.layout is None:
            raise ValueError("cannot write fields of an account without a layout")
        self.layout.encode_into(self.handle.data, values, offset=self.data_offset)
        self.fields.update(values)

    def reload(self) -> None:
        """Re-decode the record from the current buffer contents."""
        if self.layout is not None:
            self.fields = self.layout.decode(self.handle.data, self.data_offset)
