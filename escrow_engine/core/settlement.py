"""Settlement state machine for staked matches.

A concluded match is resolved exactly one way:

- settle: pot minus rake to the winner, rake to the platform wallet
- draw: each player's stake refunded
- void: same refund as a draw, triggered by disconnect, forfeit or recovery

Every step is written to the status ledger before the next transfer is
requested, so a crash leaves the last known state on the match record.
Nothing here retries a transfer; repeating a funds movement is a human
decision.
"""
import asyncio
import time
from decimal import Decimal
from typing import Any, Awaitable, Dict, Optional, TypeVar
from loguru import logger
from pydantic import BaseModel, Field

from .errors import (
    ConfigurationError,
    ErrorCode,
    EscrowError,
    MissingDataError,
    TransferFailure,
)
from .ledger import (
    ACTION_REQUIRED_STATUSES,
    SUCCESS_STATUSES,
    RakeInfo,
    SettlementStatus,
    SettlementStatusLedger,
)
from .rake import RakeConfig, split
from .signer import CustodialSigner, RefundResult, TransferResult
from .wager import Player, Wager, short_wallet, to_ui_amount

R = TypeVar("R", TransferResult, RefundResult)


class SettlementResult(BaseModel):
    """Outcome of a settle, draw or void call."""
    match_id: str
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    tx_id: Optional[str] = None
    tx_ids: Dict[str, Optional[str]] = Field(default_factory=dict)
    amount_raw: Optional[int] = None
    amount: Optional[Decimal] = None
    token_symbol: Optional[str] = None
    token_address: Optional[str] = None
    to_wallet: Optional[str] = None
    rake_amount_raw: int = 0
    rake_amount: Optional[Decimal] = None
    rake_percent: Optional[Decimal] = None
    rake_tx_id: Optional[str] = None
    rake_error: Optional[str] = None
    is_draw: bool = False
    is_void: bool = False
    timestamp: float = Field(default_factory=time.time)


class SettlementOrchestrator:
    """Drives token wagers from match end to funds moved."""

    def __init__(self, signer: CustodialSigner, ledger: SettlementStatusLedger,
                 rake_config: RakeConfig, transfer_timeout: Optional[float] = 30.0):
        """Initialize the orchestrator.

        Args:
            signer: Custodial signer executing transfers
            ledger: Status ledger every state change is written to
            rake_config: Rake settings built at startup
            transfer_timeout: Seconds to wait on any single signer call
        """
        self.signer = signer
        self.ledger = ledger
        self.rake_config = rake_config
        self.transfer_timeout = transfer_timeout
        # match_id -> in-flight operation; a match id is claimed before any transfer
        self.pending_settlements: Dict[str, Dict[str, Any]] = {}
        self.settlement_history: Dict[str, SettlementResult] = {}
        # match_id -> terminal status; a closed match is never reopened in this process
        self.closed_matches: Dict[str, SettlementStatus] = {}

    async def settle(self, wager: Wager, winner: Player, loser: Player) -> SettlementResult:
        """Pay the pot (less rake) to the winner of a token wager."""
        if not wager.has_token_stake:
            return SettlementResult(match_id=wager.match_id, success=True,
                                    message="No token wager to settle")

        rejection = self._claim(wager.match_id, "settle")
        if rejection:
            return rejection
        try:
            return await self._settle_token_wager(wager, winner, loser)
        finally:
            self._release(wager.match_id)

    async def handle_draw(self, wager: Wager) -> SettlementResult:
        """Refund both players after a drawn match."""
        return await self._refund_both(wager, reason="draw", is_draw=True)

    async def handle_void(self, wager: Wager, reason: str = "void") -> SettlementResult:
        """Refund both players after a voided match.

        Args:
            wager: The voided match
            reason: Why the match was voided (disconnect, forfeit, server_restart);
                recorded for audit only
        """
        return await self._refund_both(wager, reason=reason, is_draw=False)

    def get_settlement_status(self, match_id: str) -> Optional[SettlementResult]:
        return self.settlement_history.get(match_id)

    async def _settle_token_wager(self, wager: Wager, winner: Player, loser: Player) -> SettlementResult:
        match_id = wager.match_id
        token = wager.token
        logger.info(f"Starting token wager settlement for match {match_id}")
        logger.info(f"  Winner: {short_wallet(winner.wallet)}  Loser: {short_wallet(loser.wallet)}")

        await self.ledger.set_status(match_id, SettlementStatus.PROCESSING)

        try:
            self._require_ready("Custodial wallet not initialized - requires manual review")
            if not winner.wallet:
                raise MissingDataError("Missing winner wallet address")
        except EscrowError as e:
            return await self._reject(match_id, e)

        total_pot_raw = token.total_pot_raw
        rake = split(total_pot_raw, self.rake_config)
        rake_amount_raw = rake.rake_raw
        winner_payout_raw = rake.winner_payout_raw
        rake_tx_id = None
        rake_error = None

        if rake.rake_enabled:
            logger.info(
                f"  Rake breakdown: pot {to_ui_amount(total_pot_raw, token.decimals)} {token.symbol or ''}, "
                f"rake ({self.rake_config.rake_percent}%) {to_ui_amount(rake_amount_raw, token.decimals)}, "
                f"winner {to_ui_amount(winner_payout_raw, token.decimals)}"
            )
            logger.info(f"  [1/2] Sending rake to {short_wallet(self.rake_config.rake_wallet_address)}")
            try:
                rake_result = await self._transfer("rake", self.signer.process_rake_payout(
                    match_id=match_id,
                    rake_wallet=self.rake_config.rake_wallet_address,
                    token_address=token.mint_address,
                    amount_raw=rake_amount_raw,
                    decimals=token.decimals,
                ))
                rake_tx_id = rake_result.tx_id
                logger.info(f"  Rake sent. Tx: {rake_tx_id}")
            except TransferFailure as e:
                # The winner is never held hostage by the rake leg
                logger.error(f"  Rake payment failed for match {match_id}: {e}")
                logger.error(f"  Paying winner the full pot; rake of {rake_amount_raw} raw needs manual recovery")
                rake_error = str(e)
                rake_amount_raw = 0
                winner_payout_raw = total_pot_raw
        elif not self.rake_config.enabled:
            logger.info("  Rake disabled: no rake wallet configured")
        else:
            logger.info("  Rake skipped: pot below minimum threshold")

        logger.info(f"  [{'2/2' if rake.rake_enabled else '1/1'}] Sending {winner_payout_raw} raw to winner")
        rake_info = RakeInfo(
            rake_amount_raw=rake_amount_raw,
            rake_percent=self.rake_config.rake_percent,
            rake_tx=rake_tx_id,
            winner_payout_raw=winner_payout_raw,
            rake_error=rake_error,
        )

        try:
            payout = await self._transfer("payout", self.signer.process_payout(
                match_id=match_id,
                winner_wallet=winner.wallet,
                loser_wallet=loser.wallet,
                token_address=token.mint_address,
                amount_raw=winner_payout_raw,
                decimals=token.decimals,
            ))
        except TransferFailure as e:
            logger.error(f"  Winner payout failed for match {match_id}: {e}")
            if rake_tx_id:
                logger.error(f"  Rake tx {rake_tx_id} was not rolled back")
            if rake.rake_enabled:
                # Keep the rake outcome on the record for reconciliation
                await self.ledger.set_status_with_rake(match_id, SettlementStatus.FAILED, None,
                                                       rake_info, error=str(e))
            else:
                await self.ledger.set_status(match_id, SettlementStatus.FAILED, error=str(e))
            self.closed_matches[match_id] = SettlementStatus.FAILED
            return SettlementResult(
                match_id=match_id,
                success=False,
                error=str(e),
                message="Winner payout failed",
                rake_amount_raw=rake_amount_raw,
                rake_tx_id=rake_tx_id,
                rake_error=rake_error,
            )

        result = SettlementResult(
            match_id=match_id,
            success=True,
            message="Winner paid",
            tx_id=payout.tx_id,
            amount_raw=winner_payout_raw,
            amount=to_ui_amount(winner_payout_raw, token.decimals),
            token_symbol=token.symbol,
            token_address=token.mint_address,
            to_wallet=winner.wallet,
            rake_amount_raw=rake_amount_raw,
            rake_amount=to_ui_amount(rake_amount_raw, token.decimals),
            rake_percent=self.rake_config.rake_percent,
            rake_tx_id=rake_tx_id,
            rake_error=rake_error,
        )
        await self.ledger.set_status_with_rake(match_id, SettlementStatus.COMPLETED, payout.tx_id, rake_info)
        self.settlement_history[match_id] = result
        self.closed_matches[match_id] = SettlementStatus.COMPLETED

        logger.info(f"Settlement complete for match {match_id}. Winner tx: {payout.tx_id}")
        if rake_tx_id:
            logger.info(f"  Rake tx: {rake_tx_id}")
        return result

    async def _refund_both(self, wager: Wager, reason: str, is_draw: bool) -> SettlementResult:
        if not wager.has_token_stake:
            return SettlementResult(match_id=wager.match_id, success=True,
                                    message="No token wager to refund",
                                    is_draw=is_draw, is_void=not is_draw)

        rejection = self._claim(wager.match_id, reason)
        if rejection:
            return rejection
        try:
            return await self._refund_token_wager(wager, reason, is_draw)
        finally:
            self._release(wager.match_id)

    async def _refund_token_wager(self, wager: Wager, reason: str, is_draw: bool) -> SettlementResult:
        match_id = wager.match_id
        token = wager.token
        label = "Draw" if is_draw else f"Void ({reason})"
        logger.info(f"{label} for match {match_id} - refunding {token.amount_per_player} "
                    f"{token.symbol or ''} to each player")

        await self.ledger.set_status(match_id, SettlementStatus.PROCESSING)

        player1_wallet = wager.player1.wallet
        player2_wallet = wager.player2.wallet
        try:
            self._require_ready(f"{'Draw refund' if is_draw else 'Refund'} needed - custodial not ready")
            if not player1_wallet or not player2_wallet:
                raise MissingDataError(f"Missing wallet addresses for {'draw' if is_draw else 'refund'}")
        except EscrowError as e:
            return await self._reject(match_id, e, is_draw=is_draw, is_void=not is_draw)

        logger.info(f"  Player 1: {short_wallet(player1_wallet)}  Player 2: {short_wallet(player2_wallet)}")
        try:
            refund = await self._transfer("refund", self.signer.process_refund(
                match_id=match_id,
                player1_wallet=player1_wallet,
                player2_wallet=player2_wallet,
                token_address=token.mint_address,
                amount_raw=token.amount_raw_per_player,
                decimals=token.decimals,
            ))
        except TransferFailure as e:
            logger.error(f"  Refund failed for match {match_id}: {e}")
            await self.ledger.set_status(match_id, SettlementStatus.FAILED, error=str(e))
            self.closed_matches[match_id] = SettlementStatus.FAILED
            return SettlementResult(match_id=match_id, success=False, error=str(e),
                                    message="Refund failed", is_draw=is_draw, is_void=not is_draw)

        tx1, tx2 = refund.player1_tx, refund.player2_tx
        await self.ledger.set_status(match_id, SettlementStatus.REFUNDED, tx1 or tx2)
        result = SettlementResult(
            match_id=match_id,
            success=True,
            message="Draw - both players refunded" if is_draw else f"Match voided ({reason}) - both players refunded",
            tx_id=tx1 or tx2,
            tx_ids={"player1": tx1, "player2": tx2},
            amount_raw=token.amount_raw_per_player,
            amount=token.amount_per_player,
            token_symbol=token.symbol,
            token_address=token.mint_address,
            is_draw=is_draw,
            is_void=not is_draw,
        )
        self.settlement_history[match_id] = result
        self.closed_matches[match_id] = SettlementStatus.REFUNDED
        logger.info(f"Refunds complete for match {match_id}. P1 tx: {tx1}  P2 tx: {tx2}")
        return result

    def _require_ready(self, reason: str) -> None:
        if not self.signer.is_ready():
            raise ConfigurationError(reason)

    async def _reject(self, match_id: str, error: EscrowError, **result_fields: Any) -> SettlementResult:
        """Record a pre-transfer rejection and build the failed result."""
        if isinstance(error, ConfigurationError):
            logger.warning(f"  Custodial wallet not ready - cannot move funds for match {match_id}")
            status = SettlementStatus.MANUAL_REVIEW
            message = "Custodial wallet service not available - manual action required"
        else:
            logger.error(f"  {error} for match {match_id}")
            status = SettlementStatus.FAILED
            message = str(error)
        await self.ledger.set_status(match_id, status, error=str(error))
        self.closed_matches[match_id] = status
        return SettlementResult(match_id=match_id, success=False, error=error.code.value,
                                message=message, **result_fields)

    async def _transfer(self, leg: str, call: Awaitable[R]) -> R:
        """Await one signer call, turning every non-success into TransferFailure."""
        try:
            result = await asyncio.wait_for(call, timeout=self.transfer_timeout)
        except asyncio.TimeoutError as e:
            raise TransferFailure(leg, ErrorCode.SIGNER_TIMEOUT.value, ErrorCode.SIGNER_TIMEOUT) from e
        except Exception as e:
            raise TransferFailure(leg, str(e) or e.__class__.__name__) from e

        if not result.success:
            raise TransferFailure(leg, result.error or ErrorCode.SETTLEMENT_FAILED.value)
        return result

    def _claim(self, match_id: str, operation: str) -> Optional[SettlementResult]:
        """Reserve a match for one operation, or explain why it cannot be."""
        if match_id in self.pending_settlements:
            in_flight = self.pending_settlements[match_id]["operation"]
            logger.warning(f"Rejected {operation} for match {match_id}: {in_flight} already in progress")
            return SettlementResult(match_id=match_id, success=False,
                                    error=ErrorCode.SETTLEMENT_IN_PROGRESS.value,
                                    message=f"Settlement already in progress ({in_flight})")
        closed = self.closed_matches.get(match_id)
        if closed in SUCCESS_STATUSES:
            logger.warning(f"Rejected {operation} for match {match_id}: already settled")
            return SettlementResult(match_id=match_id, success=False,
                                    error=ErrorCode.ALREADY_SETTLED.value,
                                    message="Match already settled")
        if closed in ACTION_REQUIRED_STATUSES:
            # Funds may have partly moved; only an operator can decide what happens next
            logger.warning(f"Rejected {operation} for match {match_id}: settlement ended {closed.value}")
            return SettlementResult(match_id=match_id, success=False,
                                    error=ErrorCode.SETTLEMENT_FAILED_TERMINAL.value,
                                    message=f"Settlement ended {closed.value} - manual action required")
        self.pending_settlements[match_id] = {"operation": operation, "started_at": time.time()}
        return None

    def _release(self, match_id: str) -> None:
        self.pending_settlements.pop(match_id, None)
