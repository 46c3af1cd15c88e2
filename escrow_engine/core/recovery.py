"""Startup sweeps that close out work left behind by a previous process."""
import asyncio
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from loguru import logger

from .ledger import SettlementStatus, SettlementStatusLedger
from .settlement import SettlementOrchestrator
from .store import MatchStatus, MatchStore
from .wager import Wager

# Matches younger than this may still be starting on another request
ORPHAN_GRACE_PERIOD = timedelta(minutes=5)

MANUAL_RECOVERY_NOTE = "Requires manual settlement after server recovery"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RecoverySummary:
    """Counts from one orphan recovery sweep."""
    recovered: int = 0
    failed: int = 0
    total: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OrphanRecoveryScanner:
    """Voids matches left active by a process that died mid-match."""

    def __init__(self, store: MatchStore, orchestrator: SettlementOrchestrator,
                 grace_period: timedelta = ORPHAN_GRACE_PERIOD,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.orchestrator = orchestrator
        self.grace_period = grace_period
        self.clock = clock

    async def recover(self) -> RecoverySummary:
        """Refund or flag every orphaned match.

        Returns:
            Summary with recovered, failed and total counts
        """
        if not self.store.is_connected():
            logger.info("Orphan recovery skipped - match store not connected")
            return RecoverySummary()

        logger.info("Checking for orphaned matches...")
        cutoff = self.clock() - self.grace_period
        try:
            orphans = await self.store.find({
                "status": MatchStatus.ACTIVE.value,
                "startedAt": {"$lt": cutoff},
            })
        except Exception as e:
            logger.error(f"Orphan recovery query failed: {e}")
            return RecoverySummary(error=str(e))

        if not orphans:
            logger.info("No orphaned matches found")
            return RecoverySummary()

        logger.info(f"Found {len(orphans)} orphaned match(es)")
        outcomes = await asyncio.gather(*(self._recover_match(record) for record in orphans))

        summary = RecoverySummary(
            recovered=sum(1 for ok in outcomes if ok),
            failed=sum(1 for ok in outcomes if not ok),
            total=len(orphans),
        )
        logger.info(
            f"Orphan recovery complete: {summary.recovered} recovered, "
            f"{summary.failed} failed, {summary.total} total"
        )
        return summary

    async def _recover_match(self, record: Dict[str, Any]) -> bool:
        match_id = record.get("matchId")
        try:
            wager = Wager.from_match_record(record)
            stakes = f"{wager.coin_amount_per_player} coins"
            if wager.token:
                stakes += f" + {wager.token.amount_per_player} {wager.token.symbol or wager.token.mint_address}"
            logger.info(f"  Processing orphan {match_id}: wagers {stakes}")

            if wager.has_token_stake:
                result = await self.orchestrator.handle_void(wager, "server_restart")
                if not result.success:
                    logger.error(f"  Token refund failed for orphan {match_id}: {result.error}")
                    await self._abandon(match_id, SettlementStatus.MANUAL_REVIEW,
                                        f"Recovery refund failed: {result.error}")
                    return False
                closed = await self._abandon(match_id, SettlementStatus.REFUNDED, "Server restart - match abandoned")
            elif wager.has_coin_stake:
                # Coin balances are owned by the account service, not escrow
                logger.info(f"  Coin-only wager on {match_id} - marking for manual review")
                closed = await self._abandon(match_id, SettlementStatus.MANUAL_REVIEW,
                                             "Server restart - coin wager requires manual refund")
            else:
                closed = await self._abandon(match_id, SettlementStatus.NONE, "Server restart - match abandoned")

            if not closed:
                logger.error(f"  Match {match_id} could not be marked as abandoned")
                return False
            logger.info(f"  Match {match_id} marked as abandoned")
            return True

        except Exception as e:
            logger.error(f"  Error recovering orphan {match_id}: {e}")
            await self._abandon(match_id, SettlementStatus.MANUAL_REVIEW, f"Recovery failed: {e}")
            return False

    async def _abandon(self, match_id: str, settlement_status: SettlementStatus, note: str) -> bool:
        return await self.orchestrator.ledger.mark_abandoned(match_id, settlement_status, note, self.clock())


class PendingSettlementReconciler:
    """Flags settlements that were mid-flight when the previous process died.

    Who won and which wallet to pay lived only in that process's memory, so
    these are never resumed automatically.
    """

    def __init__(self, store: MatchStore, ledger: SettlementStatusLedger):
        self.store = store
        self.ledger = ledger

    async def reconcile(self) -> int:
        """Move every interrupted settlement to manual review.

        Returns:
            Number of matches processed
        """
        if not self.store.is_connected():
            return 0

        try:
            interrupted = await self.store.find({
                "status": MatchStatus.COMPLETED.value,
                "settlementStatus": {"$in": [SettlementStatus.PENDING.value, SettlementStatus.PROCESSING.value]},
                "wagerToken.tokenAddress": {"$ne": None},
            })
        except Exception as e:
            logger.error(f"Error looking up pending settlements: {e}")
            return 0

        logger.info(f"Found {len(interrupted)} pending settlement(s) to reconcile")
        for record in interrupted:
            match_id = record["matchId"]
            await self.ledger.set_status(match_id, SettlementStatus.MANUAL_REVIEW, error=MANUAL_RECOVERY_NOTE)
            logger.warning(f"  Match {match_id} marked for manual review")

        return len(interrupted)
