"""Unit tests for wager records."""
import pytest
from decimal import Decimal
from pydantic import ValidationError
from escrow_engine.core.errors import MissingDataError
from escrow_engine.core.wager import TokenStake, Wager, mask_address, short_wallet, to_ui_amount

@pytest.fixture
def match_record():
    """Match document as written by the game server."""
    return {
        "matchId": "match-42",
        "status": "active",
        "player1": {"playerId": "p1", "name": "alice", "wallet": "A1iceWa11et"},
        "player2": {"playerId": "p2", "name": "bob", "wallet": "BobWa11et"},
        "wagerAmount": 50,
        "wagerToken": {
            "tokenAddress": "MintAddress111",
            "tokenSymbol": "BONK",
            "tokenDecimals": 5,
            "amountRaw": "2500000",
        },
    }

def test_ui_amount_conversion():
    assert to_ui_amount(1_900_000) == Decimal("1.9")
    assert to_ui_amount(12345, 2) == Decimal("123.45")
    assert to_ui_amount(0) == Decimal("0")

def test_address_helpers():
    assert short_wallet("ABCDEFGHIJKLMNOP") == "ABCDEFGH..."
    assert short_wallet(None) == "<none>"
    assert mask_address("ABCDEFGHIJKLMNOP") == "ABCD...MNOP"
    assert mask_address("") is None

def test_token_stake_pot():
    """Test that the pot is both stakes combined."""
    stake = TokenStake(mint_address="mint", amount_raw_per_player=750_000)
    assert stake.decimals == 6
    assert stake.total_pot_raw == 1_500_000
    assert stake.amount_per_player == Decimal("0.75")

def test_token_stake_requires_positive_amount():
    with pytest.raises(ValidationError):
        TokenStake(mint_address="mint", amount_raw_per_player=0)

def test_from_match_record(match_record):
    """Test building a wager from a stored match."""
    wager = Wager.from_match_record(match_record)
    assert wager.match_id == "match-42"
    assert wager.player1.wallet == "A1iceWa11et"
    assert wager.player2.name == "bob"
    assert wager.coin_amount_per_player == 50
    assert wager.has_token_stake
    assert wager.has_coin_stake
    assert wager.token.mint_address == "MintAddress111"
    assert wager.token.symbol == "BONK"
    assert wager.token.decimals == 5
    assert wager.token.amount_raw_per_player == 2_500_000

def test_from_match_record_legacy_decimals_key(match_record):
    del match_record["wagerToken"]["tokenDecimals"]
    match_record["wagerToken"]["decimals"] = 9
    assert Wager.from_match_record(match_record).token.decimals == 9

def test_from_match_record_default_decimals(match_record):
    del match_record["wagerToken"]["tokenDecimals"]
    assert Wager.from_match_record(match_record).token.decimals == 6

def test_from_match_record_unknown_raw_amount(match_record):
    """Test that a staked token with no usable raw amount is refused."""
    match_record["wagerToken"]["tokenAmount"] = 5
    match_record["wagerToken"]["amountRaw"] = None
    with pytest.raises(MissingDataError):
        Wager.from_match_record(match_record)

    match_record["wagerToken"]["amountRaw"] = "not-a-number"
    with pytest.raises(MissingDataError):
        Wager.from_match_record(match_record)

def test_from_match_record_without_token(match_record):
    """Test that an empty or zero token wager carries no token stake."""
    match_record["wagerToken"] = {"tokenAddress": None, "amountRaw": "0"}
    wager = Wager.from_match_record(match_record)
    assert not wager.has_token_stake
    assert wager.has_coin_stake

    del match_record["wagerToken"]
    match_record["wagerAmount"] = 0
    match_record["player2"] = None
    wager = Wager.from_match_record(match_record)
    assert not wager.has_token_stake
    assert not wager.has_coin_stake
    assert wager.player2.wallet is None
