"""Platform rake calculation."""
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, field_validator

from .wager import mask_address

BASIS_POINTS = 10000


class RakeConfig(BaseModel):
    """Process-wide rake settings, built once at startup."""
    model_config = ConfigDict(frozen=True)

    rake_wallet_address: Optional[str] = None  # None disables rake
    rake_percent: Decimal = Decimal("5")
    min_pot_for_rake: int = 1000  # raw units

    @field_validator("rake_percent")
    @classmethod
    def percent_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("rake_percent must be between 0 and 100")
        return v

    @property
    def enabled(self) -> bool:
        return self.rake_wallet_address is not None

    @property
    def rake_basis_points(self) -> int:
        return int((self.rake_percent * 100).to_integral_value(rounding=ROUND_FLOOR))

    def summary(self) -> Dict[str, Any]:
        """Rake settings safe to expose in health output."""
        return {
            "enabled": self.enabled,
            "percent": self.rake_percent,
            "min_pot_raw": self.min_pot_for_rake,
            "wallet": mask_address(self.rake_wallet_address),
        }


@dataclass(frozen=True)
class RakeSplit:
    """Division of a pot between the rake wallet and the winner."""
    rake_raw: int
    winner_payout_raw: int
    rake_enabled: bool

    @property
    def total_pot_raw(self) -> int:
        return self.rake_raw + self.winner_payout_raw


def split(total_pot_raw: int, config: RakeConfig) -> RakeSplit:
    """Split a pot into rake and winner payout using integer arithmetic.

    Args:
        total_pot_raw: Pot size in raw token units
        config: Rake settings

    Returns:
        RakeSplit whose parts always sum to the pot
    """
    if total_pot_raw < 0:
        raise ValueError(f"Pot cannot be negative: {total_pot_raw}")

    rake_enabled = config.enabled and total_pot_raw >= config.min_pot_for_rake
    if not rake_enabled:
        return RakeSplit(rake_raw=0, winner_payout_raw=total_pot_raw, rake_enabled=False)

    rake_raw = total_pot_raw * config.rake_basis_points // BASIS_POINTS
    return RakeSplit(
        rake_raw=rake_raw,
        winner_payout_raw=total_pot_raw - rake_raw,
        rake_enabled=True,
    )
