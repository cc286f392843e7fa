"""
Rent-exemption balance.

An account is rent exempt when its balance covers two years of rent for its
data plus a fixed per-account storage overhead:

    minimum_balance(len) = (overhead + len) * lamports_per_byte_year * threshold
"""

from pydantic import BaseModel, ConfigDict, Field


class Rent(BaseModel):
    """Rent parameters; defaults come from the library settings."""

    model_config = ConfigDict(frozen=True)

    lamports_per_byte_year: int = Field(default=3480, gt=0)
    exemption_threshold: float = Field(default=2.0, gt=0)
    account_storage_overhead: int = Field(default=128, ge=0)

    @classmethod
    def from_settings(cls) -> "Rent":
        from account_guard.core.config import settings

        return cls(
            lamports_per_byte_year=settings.rent_lamports_per_byte_year,
            exemption_threshold=settings.rent_exemption_threshold,
            account_storage_overhead=settings.rent_account_storage_overhead,
        )

    def minimum_balance(self, data_len: int) -> int:
        """Minimum lamports for an account holding ``data_len`` bytes."""
        if data_len < 0:
            raise ValueError(f"data length must not be negative, got {data_len}")
        bytes_total = self.account_storage_overhead + data_len
        return int(bytes_total * self.lamports_per_byte_year * self.exemption_threshold)

    def is_exempt(self, balance: int, data_len: int) -> bool:
        return balance >= self.minimum_balance(data_len)
