"""Custodial signer integration."""
import asyncio
from typing import Any, Dict, List, Optional, Protocol
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
import aiohttp

from .errors import ErrorCode
from .wager import mask_address


class TransferResult(BaseModel):
    """Outcome of a single payout or rake transfer."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool
    tx_id: Optional[str] = Field(default=None, alias="txId")
    error: Optional[str] = None


class RefundResult(BaseModel):
    """Outcome of a combined refund to both players."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool
    tx_ids: List[Optional[str]] = Field(default_factory=list, alias="txIds")
    error: Optional[str] = None

    @property
    def player1_tx(self) -> Optional[str]:
        return self.tx_ids[0] if len(self.tx_ids) > 0 else None

    @property
    def player2_tx(self) -> Optional[str]:
        return self.tx_ids[1] if len(self.tx_ids) > 1 else None


class CustodialSigner(Protocol):
    """Key-holding service that executes transfers out of escrow."""

    async def initialize(self) -> bool: ...

    def is_ready(self) -> bool: ...

    def get_public_key(self) -> Optional[str]: ...

    async def process_payout(self, *, match_id: str, winner_wallet: str, loser_wallet: Optional[str],
                             token_address: str, amount_raw: int, decimals: int) -> TransferResult: ...

    async def process_rake_payout(self, *, match_id: str, rake_wallet: str, token_address: str,
                                  amount_raw: int, decimals: int) -> TransferResult: ...

    async def process_refund(self, *, match_id: str, player1_wallet: str, player2_wallet: str,
                             token_address: str, amount_raw: int, decimals: int) -> RefundResult: ...

    async def get_audit_log(self, limit: int = 100) -> List[Dict[str, Any]]: ...


class HttpCustodialSigner:
    """Client for a custodial signer service exposing a JSON HTTP API."""

    def __init__(self, base_url: str, api_token: Optional[str] = None, timeout: float = 30.0):
        """Initialize the signer client.

        Args:
            base_url: Root URL of the signer service
            api_token: Optional bearer token sent with every request
            timeout: Total time allowed per request, in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._ready = False
        self._public_key: Optional[str] = None

    def __repr__(self) -> str:
        return f"HttpCustodialSigner(url={self.base_url!r}, ready={self._ready})"

    async def initialize(self) -> bool:
        """Fetch readiness and the custodial public key from the service."""
        data = await self._request("GET", "/status")
        self._ready = bool(data.get("ready"))
        self._public_key = data.get("publicKey") or self._public_key
        if self._ready:
            logger.info(f"Custodial signer ready - wallet {mask_address(self._public_key)}")
        else:
            logger.warning(f"Custodial signer not ready: {data.get('error', 'service reported not ready')}")
        return self._ready

    def is_ready(self) -> bool:
        return self._ready

    def get_public_key(self) -> Optional[str]:
        return self._public_key

    async def process_payout(self, *, match_id: str, winner_wallet: str, loser_wallet: Optional[str],
                             token_address: str, amount_raw: int, decimals: int) -> TransferResult:
        data = await self._request("POST", "/payout", {
            "matchId": match_id,
            "winnerWallet": winner_wallet,
            "loserWallet": loser_wallet,
            "tokenAddress": token_address,
            "amountRaw": str(amount_raw),
            "decimals": decimals,
        })
        return TransferResult.model_validate(data)

    async def process_rake_payout(self, *, match_id: str, rake_wallet: str, token_address: str,
                                  amount_raw: int, decimals: int) -> TransferResult:
        data = await self._request("POST", "/rake", {
            "matchId": match_id,
            "rakeWallet": rake_wallet,
            "tokenAddress": token_address,
            "amountRaw": str(amount_raw),
            "decimals": decimals,
        })
        return TransferResult.model_validate(data)

    async def process_refund(self, *, match_id: str, player1_wallet: str, player2_wallet: str,
                             token_address: str, amount_raw: int, decimals: int) -> RefundResult:
        data = await self._request("POST", "/refund", {
            "matchId": match_id,
            "player1Wallet": player1_wallet,
            "player2Wallet": player2_wallet,
            "tokenAddress": token_address,
            "amountRaw": str(amount_raw),
            "decimals": decimals,
        })
        return RefundResult.model_validate(data)

    async def get_audit_log(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Fetch the most recent signer audit entries."""
        data = await self._request("GET", f"/audit?limit={int(limit)}")
        if not data.get("success", True):
            logger.error(f"Failed to fetch signer audit log: {data.get('error')}")
            return []
        return list(data.get("entries", []))

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Call the signer service.

        Transport problems come back as a failed result rather than an
        exception, so every caller sees the same success/error shape.
        """
        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=self._headers()) as session:
                async with session.request(method, url, json=payload) as response:
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = None
                    if not isinstance(data, dict):
                        data = {}
                    if response.status >= 400:
                        error = data.get("error") or f"HTTP {response.status}"
                        logger.error(f"Signer {method} {path} failed: {error}")
                        return {"success": False, "error": error}
                    return data
        except asyncio.TimeoutError:
            logger.error(f"Signer {method} {path} timed out after {self.timeout}s")
            return {"success": False, "error": ErrorCode.SIGNER_TIMEOUT.value}
        except aiohttp.ClientError as e:
            logger.error(f"Signer {method} {path} unreachable: {e}")
            return {"success": False, "error": ErrorCode.SIGNER_UNAVAILABLE.value}
