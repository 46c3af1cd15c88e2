"""Settlement status ledger persisted on match records."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from loguru import logger
from pydantic import BaseModel

from .store import MatchStatus, MatchStore


class SettlementStatus(str, Enum):
    """Settlement state of a match."""
    NONE = "none"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"
    MANUAL_REVIEW = "manual_review"


SUCCESS_STATUSES = frozenset({SettlementStatus.COMPLETED, SettlementStatus.REFUNDED})
ACTION_REQUIRED_STATUSES = frozenset({SettlementStatus.FAILED, SettlementStatus.MANUAL_REVIEW})


class RakeInfo(BaseModel):
    """Rake metadata recorded alongside a winner payout."""
    rake_amount_raw: int
    rake_percent: Decimal
    rake_tx: Optional[str] = None
    winner_payout_raw: int
    rake_error: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        # Raw amounts are stored as strings to keep full precision
        record = {
            "rakeAmountRaw": str(self.rake_amount_raw),
            "rakePercent": float(self.rake_percent),
            "rakeTx": self.rake_tx,
            "winnerPayoutRaw": str(self.winner_payout_raw),
        }
        if self.rake_error:
            record["rakeError"] = self.rake_error
        return record


class SettlementStatusLedger:
    """Best-effort writer of settlement status onto match records.

    Writes never raise: a store outage is logged and the caller carries on,
    since moving funds takes priority over recording that they moved.
    """

    def __init__(self, store: MatchStore):
        self.store = store

    async def set_status(self, match_id: str, status: SettlementStatus,
                         tx_id: Optional[str] = None, error: Optional[str] = None) -> bool:
        """Record a settlement status.

        Returns:
            True if the write reached the store
        """
        patch = {
            "settlementStatus": SettlementStatus(status).value,
            "settlementTx": tx_id,
            "settlementError": error,
        }
        return await self._write(match_id, patch)

    async def set_status_with_rake(self, match_id: str, status: SettlementStatus,
                                   tx_id: Optional[str], rake_info: RakeInfo,
                                   error: Optional[str] = None) -> bool:
        """Record a settlement status together with its rake breakdown."""
        patch = {
            "settlementStatus": SettlementStatus(status).value,
            "settlementTx": tx_id,
            "settlementError": error,
        }
        patch.update(rake_info.to_record())
        return await self._write(match_id, patch)

    async def mark_abandoned(self, match_id: str, status: SettlementStatus, note: str,
                             ended_at: datetime) -> bool:
        """Close an orphaned match and record how its stakes were handled."""
        patch = {
            "status": MatchStatus.ABANDONED.value,
            "endedAt": ended_at,
            "settlementStatus": SettlementStatus(status).value,
            "settlementError": note,
            "gameState": None,
        }
        return await self._write(match_id, patch)

    async def _write(self, match_id: str, patch: Dict[str, Any]) -> bool:
        status = patch["settlementStatus"]
        if not self.store.is_connected():
            logger.warning(f"Match store not connected - status '{status}' for match {match_id} not persisted")
            return False

        try:
            await self.store.update_one({"matchId": match_id}, patch)
        except Exception as e:
            logger.warning(f"Failed to persist status '{status}' for match {match_id}: {e}")
            return False

        logger.debug(f"Settlement status for match {match_id} updated to: {status}")
        return True
