"""Solana chain connector: balances, Jupiter swap submission and SOL transfers"""

import asyncio
import base64
import time
from typing import Optional, Tuple, Type

import httpx
import structlog
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from src.chains.connector import ChainConnector, SubmittedTx
from src.chains.networks import ChainType
from src.chains.tokens import WRAPPED_SOL_MINT
from src.config.models import ChainConfig
from src.errors import ConfirmationTimeoutError, TransactionFailedError

logger = structlog.get_logger()

CONFIRMATION_POLL_SECONDS = 1.0

# Signature fee of a one-signer transaction
BASE_FEE_LAMPORTS = 5000

_CONFIRMED_STATUSES = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


class SolanaConnector(ChainConnector):
    """Connector for Solana clusters using the async RPC client"""

    def __init__(self, config: ChainConfig):
        if config.chain_type != ChainType.SOLANA:
            raise ValueError(f"{config.name} is not a Solana network")
        self.client: Optional[AsyncClient] = None
        super().__init__(config)
        self._logger = logger.bind(component="solana_connector", chain=self.chain_name)

    def _connect(self) -> None:
        self.client = AsyncClient(self.current_rpc_url, commitment=Confirmed)

    def _transient_errors(self) -> Tuple[Type[BaseException], ...]:
        return (SolanaRpcException, httpx.HTTPError, OSError)

    async def close(self) -> None:
        if self.client:
            await self.client.close()

    async def get_native_balance(self, owner: str) -> int:
        pubkey = Pubkey.from_string(owner)
        response = await self._retry_with_failover(
            "getBalance", lambda: self.client.get_balance(pubkey)
        )
        return int(response.value)

    async def get_balance(self, token: str, owner: str) -> int:
        # Jupiter swaps wrap and unwrap SOL, so SOL legs settle in lamports
        if token == WRAPPED_SOL_MINT:
            return await self.get_native_balance(owner)

        owner_key = Pubkey.from_string(owner)
        opts = TokenAccountOpts(mint=Pubkey.from_string(token))
        response = await self._retry_with_failover(
            "getTokenAccountsByOwner",
            lambda: self.client.get_token_accounts_by_owner_json_parsed(owner_key, opts),
        )

        total = 0
        for account in response.value or []:
            info = account.account.data.parsed["info"]
            total += int(info["tokenAmount"]["amount"])
        return total

    async def ensure_allowance(
        self, signer, token: str, spender: Optional[str], amount: int
    ) -> Optional[SubmittedTx]:
        # SPL swaps are signed by the owner directly; there is no allowance step
        return None

    async def submit_swap(self, signer, quote) -> SubmittedTx:
        if not quote.data:
            raise TransactionFailedError("Quote is not executable: missing swap transaction")

        unsigned = VersionedTransaction.from_bytes(base64.b64decode(quote.data))
        signed = signer.sign_transaction(unsigned)
        return await self._send_and_confirm(
            signed, "swap", fallback_fee=quote.gas_estimate * (quote.gas_price or 1)
        )

    async def transfer_native(self, signer, recipient: str, lamports: int) -> SubmittedTx:
        """Send lamports from the signer's account with a system transfer"""
        if lamports <= 0:
            raise TransactionFailedError(f"Invalid transfer amount: {lamports}")

        payer = Pubkey.from_string(signer.address)
        instruction = transfer(
            TransferParams(from_pubkey=payer, to_pubkey=Pubkey.from_string(recipient), lamports=lamports)
        )
        blockhash = await self._retry_with_failover(
            "getLatestBlockhash", lambda: self.client.get_latest_blockhash()
        )
        message = MessageV0.try_compile(payer, [instruction], [], blockhash.value.blockhash)
        return await self._send_and_confirm(
            signer.sign_message(message), "transfer", fallback_fee=BASE_FEE_LAMPORTS
        )

    async def _send_and_confirm(
        self, signed: VersionedTransaction, label: str, fallback_fee: int
    ) -> SubmittedTx:
        try:
            response = await self.client.send_raw_transaction(
                bytes(signed), opts=TxOpts(skip_preflight=False, max_retries=3)
            )
        except (SolanaRpcException, httpx.HTTPError, OSError) as e:
            self._logger.error("transaction_submit_failed", label=label, error=str(e))
            raise TransactionFailedError(f"{label} transaction rejected: {e}") from e

        signature = response.value
        tx_ref = str(signature)
        self._logger.info("transaction_submitted", label=label, tx_ref=tx_ref)

        try:
            slot = await self.wait_for_confirmation(signature)
        except ConfirmationTimeoutError:
            raise
        except TransactionFailedError as e:
            # A failed transaction still pays its fee
            e.gas_spent_native = fallback_fee
            raise
        fee = await self._get_fee(signature)
        if fee is None:
            fee = fallback_fee

        self._logger.info("transaction_confirmed", label=label, tx_ref=tx_ref, slot=slot, fee=fee)
        return SubmittedTx(tx_ref=tx_ref, gas_spent_native=fee, block_number=slot)

    async def wait_for_confirmation(self, signature: Signature) -> Optional[int]:
        """Poll signature status until confirmed; returns the slot"""
        tx_ref = str(signature)
        deadline = time.monotonic() + self.confirmation_timeout_seconds

        while time.monotonic() < deadline:
            response = await self._retry_with_failover(
                "getSignatureStatuses",
                lambda: self.client.get_signature_statuses([signature]),
            )
            status = response.value[0]
            if status is not None:
                if status.err:
                    self._logger.error("transaction_failed", tx_ref=tx_ref, error=str(status.err))
                    raise TransactionFailedError(
                        f"Transaction {tx_ref} failed: {status.err}", tx_ref=tx_ref
                    )
                if status.confirmation_status in _CONFIRMED_STATUSES:
                    return status.slot
            await asyncio.sleep(CONFIRMATION_POLL_SECONDS)

        self._logger.error(
            "transaction_confirmation_timeout",
            tx_ref=tx_ref,
            timeout_seconds=self.confirmation_timeout_seconds,
        )
        raise ConfirmationTimeoutError(
            f"Transaction {tx_ref} not confirmed within {self.confirmation_timeout_seconds}s",
            tx_ref=tx_ref,
        )

    async def _get_fee(self, signature: Signature) -> Optional[int]:
        response = await self._retry_with_failover(
            "getTransaction",
            lambda: self.client.get_transaction(signature, max_supported_transaction_version=0),
        )
        if response.value is None or response.value.transaction.meta is None:
            return None
        return int(response.value.transaction.meta.fee)
