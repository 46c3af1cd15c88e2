"""Test configuration and fixtures for the escrow engine."""
import os
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from escrow_engine.core.ledger import SettlementStatusLedger
from escrow_engine.core.rake import RakeConfig
from escrow_engine.core.signer import HttpCustodialSigner, RefundResult, TransferResult
from escrow_engine.core.store import MongoMatchStore
from escrow_engine.core.wager import Player, TokenStake, Wager

RAKE_WALLET = "RakeWa11et9xQpZ4mKv7Lr2NcT8sYhU3bF6dJ1gE5wA"
CUSTODIAL_WALLET = "CustodyWa11etB8nP3kX6vR9mT2qL5sY7hU4cF1dG"
MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@pytest.fixture
def rake_config():
    """5% rake above a 1000 raw unit pot."""
    return RakeConfig(rake_wallet_address=RAKE_WALLET, rake_percent=Decimal("5"), min_pot_for_rake=1000)


@pytest.fixture
def no_rake_config():
    return RakeConfig()


@pytest.fixture
def alice():
    return Player(player_id="p1", name="alice", wallet="A1iceWa11et7hT2mQ9vK4rP6sL3nX8cB5dF1gJ")


@pytest.fixture
def bob():
    return Player(player_id="p2", name="bob", wallet="BobWa11et3kR8vN5qT1mL7xP4sH9cY2bF6dG")


@pytest.fixture
def token_wager(alice, bob):
    """Token wager of 1 USDC per player."""
    return Wager(
        match_id="match-001",
        player1=alice,
        player2=bob,
        token=TokenStake(mint_address=MINT, symbol="USDC", decimals=6, amount_raw_per_player=1_000_000),
    )


@pytest.fixture
def free_wager(alice, bob):
    """Match with nothing staked."""
    return Wager(match_id="match-free", player1=alice, player2=bob)


@pytest.fixture
def mock_signer():
    """Create a ready custodial signer whose transfers all succeed."""
    signer = MagicMock(spec=HttpCustodialSigner)
    signer.is_ready.return_value = True
    signer.get_public_key.return_value = CUSTODIAL_WALLET
    signer.initialize = AsyncMock(return_value=True)
    signer.process_rake_payout = AsyncMock(return_value=TransferResult(success=True, tx_id="rake-tx"))
    signer.process_payout = AsyncMock(return_value=TransferResult(success=True, tx_id="payout-tx"))
    signer.process_refund = AsyncMock(
        return_value=RefundResult(success=True, tx_ids=["refund-tx-1", "refund-tx-2"])
    )
    signer.get_audit_log = AsyncMock(return_value=[])
    return signer


@pytest.fixture
def mock_store():
    """Create a connected match store with no matching documents."""
    store = MagicMock(spec=MongoMatchStore)
    store.is_connected.return_value = True
    store.connect = AsyncMock(return_value=True)
    store.find = AsyncMock(return_value=[])
    store.update_one = AsyncMock(return_value=None)
    return store


@pytest.fixture
def ledger(mock_store):
    return SettlementStatusLedger(mock_store)


@pytest.fixture
def env_setup():
    """Set up environment variables for testing."""
    os.environ["RAKE_WALLET"] = RAKE_WALLET
    os.environ["ESCROW_LOG_LEVEL"] = "DEBUG"
    yield
    del os.environ["RAKE_WALLET"]
    del os.environ["ESCROW_LOG_LEVEL"]
