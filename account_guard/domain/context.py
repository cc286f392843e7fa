"""
AccountContext: the named sibling accounts visible to one validation run.
"""

from collections.abc import Iterator, Mapping
from typing import Any

from solders.pubkey import Pubkey

from account_guard.core.errors import AccountValidationError
from account_guard.domain.accounts import AccountHandle, TypedAccount
from account_guard.domain.enums import ErrorCode


class AccountContext(Mapping[str, Any]):
    """
    Read-only mapping of names to accounts for a single run.

    Entries are usually TypedAccount or AccountHandle instances; optional
    accounts that were not supplied map to None. Plain values (ints, bytes,
    dicts) are accepted too, for expressions that reference instruction
    arguments.

    ``bumps`` collects the canonical bump of every PDA validated so far in
    the run, keyed by account name.
    """

    def __init__(
        self,
        accounts: Mapping[str, Any] | None = None,
        bumps: Mapping[str, int] | None = None,
    ) -> None:
        self._accounts: dict[str, Any] = dict(accounts or {})
        self.bumps: dict[str, int] = dict(bumps or {})

    def __getitem__(self, name: str) -> Any:
        return self._accounts[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def __repr__(self) -> str:
        return f"AccountContext({list(self._accounts)}, bumps={self.bumps})"

    def bind(self, name: str, account: Any) -> None:
        """Replace the entry for ``name`` (used while loading accounts in order)."""
        self._accounts[name] = account

    def require(self, name: str, requested_by: str | None = None) -> TypedAccount | AccountHandle:
        """
        Look up a sibling account that a constraint depends on.

        Raises:
            AccountValidationError: AccountNotEnoughAccountKeys when the name is
                absent, None, or not an account
        """
        account = self._accounts.get(name)
        if not isinstance(account, (TypedAccount, AccountHandle)):
            raise AccountValidationError(
                ErrorCode.ACCOUNT_NOT_ENOUGH_ACCOUNT_KEYS,
                account=requested_by,
                details={"missing": name},
            )
        return account

    def handle(self, name: str, requested_by: str | None = None) -> AccountHandle:
        account = self.require(name, requested_by)
        return account.handle if isinstance(account, TypedAccount) else account

    def key_of(self, name: str, requested_by: str | None = None) -> Pubkey:
        return self.handle(name, requested_by).public_key
