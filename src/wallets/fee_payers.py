"""Leased pool of Solana fee payer keys"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from pydantic import SecretStr

from src.database.manager import DatabaseManager
from src.errors import NoActiveSignerError
from src.wallets.secrets import decrypt_secret
from src.wallets.solana_signer import SolanaSigner, keypair_from_secret

logger = structlog.get_logger()


class FeePayerPool:
    """
    Bounded pool over the fee_payer_keys table.

    A lease is taken atomically in the database so two concurrent signers
    never share a key. The lease expiry reclaims keys held by a process that
    died before releasing.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        encryption_key: Optional[SecretStr],
        lease_seconds: int = 120,
    ):
        self.db_manager = db_manager
        self._encryption_key = encryption_key
        self.lease_seconds = lease_seconds
        self._logger = logger.bind(component="fee_payer_pool")

    @asynccontextmanager
    async def lease(self, prefer_least_used: bool = True) -> AsyncIterator[SolanaSigner]:
        """
        Lease the least-used free fee payer holding at least the minimum
        balance and yield a signer for it.

        Raises:
            NoActiveSignerError: If no active fee payer exists or all are leased
            ConfigurationError: If the stored secret cannot be decrypted
        """
        system_settings = await self.db_manager.get_system_settings()
        min_balance = system_settings.solana_min_fee_payer_balance_lamports
        row = await self.db_manager.lease_fee_payer(
            self.lease_seconds,
            least_used_first=prefer_least_used,
            min_balance_lamports=min_balance,
        )
        if row is None:
            active = await self.db_manager.count_active_fee_payers()
            if active == 0:
                raise NoActiveSignerError("No active fee payer keys configured")
            raise NoActiveSignerError(
                f"None of {active} active fee payers is free with at least {min_balance} lamports; "
                "retry after a lease expires or a top-up"
            )

        self._logger.info(
            "fee_payer_leased",
            fee_payer_id=row.id,
            public_key=row.public_key,
            usage_count=row.usage_count,
        )

        try:
            keypair = keypair_from_secret(decrypt_secret(row.encrypted_secret_key, self._encryption_key))
            yield SolanaSigner(keypair, fee_payer_id=row.id)
        finally:
            await self.db_manager.release_fee_payer(row.id)
            self._logger.info("fee_payer_released", fee_payer_id=row.id)
