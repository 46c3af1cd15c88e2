"""Engine configuration loaded from the environment."""
import os
import sys
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Mapping, Optional
from loguru import logger
from pydantic import BaseModel, field_validator

from .rake import RakeConfig

# field name -> environment variable
ENV_VARS: Dict[str, str] = {
    "rake_wallet": "RAKE_WALLET",
    "rake_percent": "RAKE_PERCENT",
    "rake_min_pot": "RAKE_MIN_POT",
    "mongodb_url": "MONGODB_URL",
    "mongodb_database": "MONGODB_DATABASE",
    "match_collection": "MATCH_COLLECTION",
    "signer_url": "CUSTODIAL_SIGNER_URL",
    "signer_token": "CUSTODIAL_SIGNER_TOKEN",
    "signer_timeout_seconds": "SIGNER_TIMEOUT_SECONDS",
    "orphan_grace_minutes": "ORPHAN_GRACE_MINUTES",
    "log_level": "ESCROW_LOG_LEVEL",
}

_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


class EngineConfig(BaseModel):
    """Settlement engine configuration."""
    rake_wallet: Optional[str] = None
    rake_percent: Decimal = Decimal("5")
    rake_min_pot: int = 1000
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "escrow"
    match_collection: str = "matches"
    signer_url: Optional[str] = None
    signer_token: Optional[str] = None  # never logged
    signer_timeout_seconds: float = 30.0
    orphan_grace_minutes: float = 5.0
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("rake_percent")
    @classmethod
    def percent_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("RAKE_PERCENT must be between 0 and 100")
        return v

    @field_validator("signer_timeout_seconds", "orphan_grace_minutes")
    @classmethod
    def positive_duration(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("durations must be positive")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build configuration from environment variables, ignoring empty values."""
        env = os.environ if environ is None else environ
        data = {}
        for field, var in ENV_VARS.items():
            value = env.get(var)
            if value is not None and value.strip():
                data[field] = value.strip()
        return cls(**data)

    @property
    def orphan_grace_period(self) -> timedelta:
        return timedelta(minutes=self.orphan_grace_minutes)

    def rake_config(self) -> RakeConfig:
        """Freeze the rake settings for the lifetime of the process."""
        return RakeConfig(
            rake_wallet_address=self.rake_wallet,
            rake_percent=self.rake_percent,
            min_pot_for_rake=self.rake_min_pot,
        )


def configure_logging(level: str = "INFO") -> None:
    """Route loguru output to stderr at the given level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
