"""
Account constraint validation.

Key Components:
- constraints: ConstraintSet, the per-account-type policy, checked at build time
- account_type: AccountType, a record layout bound to its policy
- pipeline: The ordered validation checklist for one account
- loader: Multi-account instruction loading
"""

from account_guard.validation.account_type import AccountType
from account_guard.validation.constraints import ConstraintSet
from account_guard.validation.loader import AccountSlot, InstructionAccounts, LoadedAccounts
from account_guard.validation.seeds import seed, seed_account, seed_bump, seed_field

__all__ = [
    "AccountType",
    "ConstraintSet",
    "AccountSlot",
    "InstructionAccounts",
    "LoadedAccounts",
    "seed",
    "seed_account",
    "seed_bump",
    "seed_field",
]
