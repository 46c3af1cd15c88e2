"""Error types raised inside the settlement engine."""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Error codes surfaced to operational tooling."""
    CUSTODIAL_NOT_READY = "CUSTODIAL_NOT_READY"
    MISSING_WALLETS = "MISSING_WALLETS"
    SETTLEMENT_FAILED = "SETTLEMENT_FAILED"
    SETTLEMENT_IN_PROGRESS = "SETTLEMENT_IN_PROGRESS"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    SETTLEMENT_FAILED_TERMINAL = "SETTLEMENT_FAILED_TERMINAL"
    ENGINE_NOT_STARTED = "ENGINE_NOT_STARTED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    SIGNER_TIMEOUT = "SIGNER_TIMEOUT"
    SIGNER_UNAVAILABLE = "SIGNER_UNAVAILABLE"


class EscrowError(Exception):
    """Base exception for settlement engine errors."""

    code: ErrorCode = ErrorCode.SETTLEMENT_FAILED

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ConfigurationError(EscrowError):
    """Custodial signer is not initialized."""

    code = ErrorCode.CUSTODIAL_NOT_READY


class TransferFailure(EscrowError):
    """The signer rejected or could not complete one transfer leg."""

    def __init__(self, leg: str, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message, code)
        self.leg = leg


class PersistenceFailure(EscrowError):
    """Match store read or write failed."""

    code = ErrorCode.PERSISTENCE_FAILED


class MissingDataError(EscrowError):
    """Wallet addresses needed for a transfer could not be resolved."""

    code = ErrorCode.MISSING_WALLETS
