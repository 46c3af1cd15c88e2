"""Wager records for staked two-player matches."""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from pydantic import BaseModel, field_validator

from .errors import MissingDataError

DEFAULT_TOKEN_DECIMALS = 6


def to_ui_amount(amount_raw: int, decimals: Optional[int] = None) -> Decimal:
    """Convert raw token units to a human-readable amount."""
    if decimals is None:
        decimals = DEFAULT_TOKEN_DECIMALS
    return Decimal(int(amount_raw)).scaleb(-decimals)


def short_wallet(address: Optional[str]) -> str:
    """Truncate a wallet address for log lines."""
    if not address:
        return "<none>"
    return f"{address[:8]}..."


def mask_address(address: Optional[str]) -> Optional[str]:
    """Mask an address to its first and last four characters."""
    if not address:
        return None
    return f"{address[:4]}...{address[-4:]}"


class Player(BaseModel):
    """One side of a match."""
    player_id: Optional[str] = None
    name: Optional[str] = None
    wallet: Optional[str] = None  # null for guest players


class TokenStake(BaseModel):
    """Token staked by each player, held in custodial escrow."""
    mint_address: str
    symbol: Optional[str] = None
    decimals: int = DEFAULT_TOKEN_DECIMALS
    amount_raw_per_player: int

    @field_validator("amount_raw_per_player")
    @classmethod
    def positive_amount(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("amount_raw_per_player must be positive")
        return v

    @property
    def total_pot_raw(self) -> int:
        return 2 * self.amount_raw_per_player

    @property
    def amount_per_player(self) -> Decimal:
        return to_ui_amount(self.amount_raw_per_player, self.decimals)


class Wager(BaseModel):
    """A staked match between two players with a symmetric pot."""
    match_id: str
    player1: Player
    player2: Player
    coin_amount_per_player: int = 0
    token: Optional[TokenStake] = None

    @property
    def has_token_stake(self) -> bool:
        return self.token is not None

    @property
    def has_coin_stake(self) -> bool:
        return self.coin_amount_per_player > 0

    @classmethod
    def from_match_record(cls, record: Dict[str, Any]) -> "Wager":
        """Build a wager from a persisted match document.

        Args:
            record: Match document as stored in the match collection

        Returns:
            Wager with a token stake only if the record carries a mint
            address and a positive raw amount

        Raises:
            MissingDataError: A token was staked but its raw amount is missing
                or unreadable, so the escrowed amount is unknown
        """
        wager_token = record.get("wagerToken") or {}
        token = None
        staked = bool(wager_token.get("tokenAddress")) and (
            _positive(wager_token.get("tokenAmount")) or wager_token.get("amountRaw") not in (None, "", "0", 0)
        )
        try:
            amount_raw = int(wager_token.get("amountRaw") or 0)
        except (TypeError, ValueError):
            amount_raw = 0
        if staked and amount_raw <= 0:
            raise MissingDataError(
                f"Token wager on match {record.get('matchId')} has no usable raw amount "
                f"(amountRaw={wager_token.get('amountRaw')!r})"
            )
        if staked:
            decimals = wager_token.get("tokenDecimals")
            if decimals is None:
                decimals = wager_token.get("decimals")
            token = TokenStake(
                mint_address=wager_token["tokenAddress"],
                symbol=wager_token.get("tokenSymbol"),
                decimals=DEFAULT_TOKEN_DECIMALS if decimals is None else int(decimals),
                amount_raw_per_player=amount_raw,
            )

        return cls(
            match_id=record["matchId"],
            player1=_player_from_record(record.get("player1")),
            player2=_player_from_record(record.get("player2")),
            coin_amount_per_player=int(record.get("wagerAmount") or 0),
            token=token,
        )


def _positive(value: Any) -> bool:
    try:
        return Decimal(str(value)) > 0
    except (InvalidOperation, ValueError):
        return False


def _player_from_record(data: Optional[Dict[str, Any]]) -> Player:
    data = data or {}
    return Player(
        player_id=data.get("playerId"),
        name=data.get("name"),
        wallet=data.get("wallet"),
    )
