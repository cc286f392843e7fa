"""
Account constraint validation for on-chain programs.

Declare account types with a ConstraintSet, then validate accounts one at a
time with ``AccountType.validate`` or per instruction with
``InstructionAccounts.load``.
"""

__version__ = "0.1.0"
