from typing import Optional
from loguru import logger

from .config import EngineConfig
from .errors import ConfigurationError, ErrorCode, EscrowError
from .service import EscrowSettlementService

__all__ = [
    "EngineConfig",
    "EngineRuntime",
    "ErrorCode",
    "EscrowError",
    "EscrowSettlementService",
]


class EngineRuntime:
    """Lazily builds the store, signer and service from configuration."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config = config
        self.store = None
        self.signer = None
        self.service = None

    @property
    def config(self) -> EngineConfig:
        if self._config is None:
            self._config = EngineConfig.from_env()
        return self._config

    def get_store(self):
        """Get or create the match store"""
        from .store import MongoMatchStore
        if not self.store:
            self.store = MongoMatchStore(
                self.config.mongodb_url,
                self.config.mongodb_database,
                self.config.match_collection,
            )
        return self.store

    def get_signer(self):
        """Get or create the custodial signer client"""
        from .signer import HttpCustodialSigner
        if not self.signer:
            if not self.config.signer_url:
                raise ConfigurationError("CUSTODIAL_SIGNER_URL is not set")
            self.signer = HttpCustodialSigner(
                self.config.signer_url,
                api_token=self.config.signer_token,
                timeout=self.config.signer_timeout_seconds,
            )
        return self.signer

    def get_service(self) -> EscrowSettlementService:
        """Get or create the settlement service"""
        if not self.service:
            self.service = EscrowSettlementService(
                self.get_signer(),
                self.get_store(),
                self.config.rake_config(),
                transfer_timeout=self.config.signer_timeout_seconds,
                orphan_grace_period=self.config.orphan_grace_period,
            )
        return self.service

    async def open(self) -> EscrowSettlementService:
        """Connect the store and initialize the signer."""
        service = self.get_service()
        if not await self.get_store().connect():
            logger.warning("Continuing without match store - statuses will not be persisted")
        await service.initialize()
        return service

    def close(self) -> None:
        if self.store:
            self.store.close()
