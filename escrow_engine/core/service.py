"""Escrow settlement service exposed to game logic and ops tooling."""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional
from loguru import logger

from .errors import ErrorCode
from .ledger import SettlementStatusLedger
from .rake import RakeConfig
from .recovery import (
    ORPHAN_GRACE_PERIOD,
    OrphanRecoveryScanner,
    PendingSettlementReconciler,
    RecoverySummary,
)
from .settlement import SettlementOrchestrator, SettlementResult
from .signer import CustodialSigner
from .store import MatchStore
from .wager import Player, Wager, mask_address, short_wallet


@dataclass
class StartupReport:
    """What the startup sweeps found."""
    recovery: RecoverySummary = field(default_factory=RecoverySummary)
    reconciled: int = 0


class EscrowSettlementService:
    """Settlement engine wired to its signer and match store.

    Live settlement requests for token wagers are refused until startup()
    has run both recovery sweeps.
    """

    def __init__(self, signer: CustodialSigner, store: MatchStore, rake_config: RakeConfig,
                 transfer_timeout: Optional[float] = 30.0,
                 orphan_grace_period: timedelta = ORPHAN_GRACE_PERIOD):
        self.signer = signer
        self.store = store
        self.rake_config = rake_config
        self.ledger = SettlementStatusLedger(store)
        self.orchestrator = SettlementOrchestrator(signer, self.ledger, rake_config, transfer_timeout)
        self.orphan_scanner = OrphanRecoveryScanner(store, self.orchestrator, orphan_grace_period)
        self.reconciler = PendingSettlementReconciler(store, self.ledger)
        self.accepting = False

    async def initialize(self) -> bool:
        """Initialize the custodial signer and report the rake setup."""
        ready = await self.signer.initialize()
        if ready:
            logger.info("Escrow settlement service ready - custodial wallet initialized")
        else:
            logger.warning("Escrow settlement service: custodial wallet not available")

        if self.rake_config.enabled:
            logger.info(f"Rake enabled: {self.rake_config.rake_percent}% to "
                        f"{short_wallet(self.rake_config.rake_wallet_address)}")
        else:
            logger.info("Rake disabled: no rake wallet configured")
        return ready

    async def startup(self) -> StartupReport:
        """Run the recovery sweeps in order, then open for live requests."""
        report = StartupReport()
        try:
            report.recovery = await self.recover_orphaned_matches()
            report.reconciled = await self.process_pending_settlements()
        finally:
            self.accepting = True
        return report

    async def recover_orphaned_matches(self) -> RecoverySummary:
        return await self.orphan_scanner.recover()

    async def process_pending_settlements(self) -> int:
        return await self.reconciler.reconcile()

    def is_ready(self) -> bool:
        return self.signer.is_ready()

    async def settle(self, wager: Wager, winner: Player, loser: Player) -> SettlementResult:
        rejection = self._refuse_before_startup(wager)
        if rejection:
            return rejection
        return await self.orchestrator.settle(wager, winner, loser)

    async def handle_draw(self, wager: Wager) -> SettlementResult:
        rejection = self._refuse_before_startup(wager)
        if rejection:
            return rejection
        return await self.orchestrator.handle_draw(wager)

    async def handle_void(self, wager: Wager, reason: str = "void") -> SettlementResult:
        rejection = self._refuse_before_startup(wager)
        if rejection:
            return rejection
        return await self.orchestrator.handle_void(wager, reason)

    def get_settlement_status(self, match_id: str) -> Optional[SettlementResult]:
        return self.orchestrator.get_settlement_status(match_id)

    def get_custodial_wallet_address(self) -> Optional[str]:
        return self.signer.get_public_key()

    async def get_audit_log(self, limit: int = 100) -> List[Dict[str, Any]]:
        return await self.signer.get_audit_log(limit)

    def get_status(self) -> Dict[str, Any]:
        """Health summary for checks and admin views."""
        return {
            "ready": self.is_ready(),
            "accepting": self.accepting,
            "custodial_wallet": mask_address(self.signer.get_public_key()),
            "store_connected": self.store.is_connected(),
            "pending_settlements": len(self.orchestrator.pending_settlements),
            "history_size": len(self.orchestrator.settlement_history),
            "rake": self.rake_config.summary(),
        }

    def _refuse_before_startup(self, wager: Wager) -> Optional[SettlementResult]:
        if self.accepting or not wager.has_token_stake:
            return None
        logger.warning(f"Refused settlement for match {wager.match_id}: startup recovery has not run")
        return SettlementResult(match_id=wager.match_id, success=False,
                                error=ErrorCode.ENGINE_NOT_STARTED.value,
                                message="Settlement engine is still starting")
