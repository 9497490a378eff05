"""EVM chain connector: balances, approvals, swaps and the flash loan receiver"""

import asyncio
from typing import Any, Dict, Optional, Tuple, Type

import structlog
from eth_abi import encode
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from src.chains.connector import ChainConnector, SubmittedTx
from src.chains.networks import ChainType
from src.chains.tokens import is_native_token
from src.config.models import ChainConfig
from src.errors import ConfigurationError, ConfirmationTimeoutError, TransactionFailedError

logger = structlog.get_logger()

MAX_UINT256 = 2**256 - 1

# Swap gas limit is the quoted estimate plus 20%
GAS_LIMIT_NUMERATOR = 12
GAS_LIMIT_DENOMINATOR = 10

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
]

FLASH_RECEIVER_ABI = [
    {
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "router", "type": "address"},
            {"name": "swapData", "type": "bytes"},
        ],
        "name": "executeArbitrage",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "router", "type": "address"},
            {"name": "allowed", "type": "bool"},
        ],
        "name": "whitelistRouter",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "router", "type": "address"}],
        "name": "whitelistedRouters",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def encode_swap_legs(leg1_data: str, leg2_data: str) -> bytes:
    """Pack both legs' router calldata for the receiver's executeArbitrage"""
    return encode(["bytes", "bytes"], [_hex_to_bytes(leg1_data), _hex_to_bytes(leg2_data)])


def _hex_to_bytes(data: str) -> bytes:
    return bytes.fromhex(data[2:] if data.startswith("0x") else data)


class EvmConnector(ChainConnector):
    """Connector for EVM networks using a synchronous Web3 HTTP provider"""

    def __init__(self, config: ChainConfig):
        if config.chain_type != ChainType.EVM:
            raise ValueError(f"{config.name} is not an EVM network")
        if config.chain_id is None:
            raise ValueError(f"Missing chain_id for {config.name}")
        self.w3: Optional[Web3] = None
        super().__init__(config)
        self._logger = logger.bind(component="evm_connector", chain=self.chain_name)

    def _connect(self) -> None:
        self.w3 = Web3(Web3.HTTPProvider(self.current_rpc_url, request_kwargs={"timeout": 30}))

    def _transient_errors(self) -> Tuple[Type[BaseException], ...]:
        # requests' connection errors derive from OSError
        return (Web3Exception, OSError)

    def _erc20(self, token: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)

    def _receiver(self, receiver: str):
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(receiver), abi=FLASH_RECEIVER_ABI
        )

    async def get_native_balance(self, owner: str) -> int:
        address = Web3.to_checksum_address(owner)
        return await self._retry_with_failover(
            "eth_getBalance", lambda: self.w3.eth.get_balance(address)
        )

    async def get_balance(self, token: str, owner: str) -> int:
        if is_native_token(token):
            return await self.get_native_balance(owner)
        address = Web3.to_checksum_address(owner)
        return await self._retry_with_failover(
            "erc20_balanceOf", lambda: self._erc20(token).functions.balanceOf(address).call()
        )

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        owner_address = Web3.to_checksum_address(owner)
        spender_address = Web3.to_checksum_address(spender)
        return await self._retry_with_failover(
            "erc20_allowance",
            lambda: self._erc20(token).functions.allowance(owner_address, spender_address).call(),
        )

    async def get_gas_price(self) -> int:
        return await self._retry_with_failover("eth_gasPrice", lambda: self.w3.eth.gas_price)

    async def ensure_allowance(
        self, signer, token: str, spender: Optional[str], amount: int
    ) -> Optional[SubmittedTx]:
        if is_native_token(token):
            return None
        if not spender:
            raise TransactionFailedError(f"Quote for {token} has no allowance target")

        current = await self.get_allowance(token, signer.address, spender)
        if current >= amount:
            return None

        self._logger.info(
            "erc20_approval_required",
            token=token,
            spender=spender,
            current_allowance=current,
            required=amount,
        )
        tx = self._erc20(token).functions.approve(
            Web3.to_checksum_address(spender), MAX_UINT256
        ).build_transaction(self._base_tx(signer.address))
        return await self._send_and_confirm(signer, tx, "approve")

    async def submit_swap(self, signer, quote) -> SubmittedTx:
        if not quote.to or not quote.data:
            raise TransactionFailedError("Quote is not executable: missing transaction target or data")

        tx = self._base_tx(signer.address)
        tx.update(
            {
                "to": Web3.to_checksum_address(quote.to),
                "data": quote.data,
                "value": int(quote.value),
                "gas": quote.gas_estimate * GAS_LIMIT_NUMERATOR // GAS_LIMIT_DENOMINATOR,
                "gasPrice": quote.gas_price or await self.get_gas_price(),
            }
        )
        return await self._send_and_confirm(signer, tx, "swap")

    async def is_router_whitelisted(self, receiver: str, router: str) -> bool:
        router_address = Web3.to_checksum_address(router)
        return await self._retry_with_failover(
            "receiver_whitelistedRouters",
            lambda: self._receiver(receiver).functions.whitelistedRouters(router_address).call(),
        )

    async def get_receiver_owner(self, receiver: str) -> str:
        return await self._retry_with_failover(
            "receiver_owner", lambda: self._receiver(receiver).functions.owner().call()
        )

    async def whitelist_router(self, signer, receiver: str, router: str) -> SubmittedTx:
        """Whitelist a router on the receiver; only the receiver owner may do this"""
        owner = await self.get_receiver_owner(receiver)
        if owner.lower() != signer.address.lower():
            raise ConfigurationError(
                f"Router {router} is not whitelisted on receiver {receiver} "
                "and the ops wallet is not the receiver owner"
            )
        tx = self._receiver(receiver).functions.whitelistRouter(
            Web3.to_checksum_address(router), True
        ).build_transaction(self._base_tx(signer.address))
        return await self._send_and_confirm(signer, tx, "whitelist_router")

    async def execute_flash_arbitrage(
        self,
        signer,
        receiver: str,
        asset: str,
        amount: int,
        router: str,
        swap_data: bytes,
        gas_limit: Optional[int] = None,
    ) -> SubmittedTx:
        """Submit executeArbitrage; the whole borrow-swap-repay sequence reverts as one"""
        tx_params = self._base_tx(signer.address)
        if gas_limit:
            tx_params["gas"] = gas_limit
        tx = self._receiver(receiver).functions.executeArbitrage(
            Web3.to_checksum_address(asset),
            amount,
            Web3.to_checksum_address(router),
            swap_data,
        ).build_transaction(tx_params)
        return await self._send_and_confirm(signer, tx, "flash_arbitrage")

    def _base_tx(self, sender: str) -> Dict[str, Any]:
        address = Web3.to_checksum_address(sender)
        return {
            "from": address,
            "nonce": self.w3.eth.get_transaction_count(address, "pending"),
            "chainId": self.config.chain_id,
        }

    async def _send_and_confirm(self, signer, tx: Dict[str, Any], label: str) -> SubmittedTx:
        try:
            raw = signer.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(raw)
        except (Web3Exception, ValueError, OSError) as e:
            self._logger.error("transaction_submit_failed", label=label, error=str(e))
            raise TransactionFailedError(f"{label} transaction rejected: {e}") from e

        tx_ref = Web3.to_hex(tx_hash)
        self._logger.info("transaction_submitted", label=label, tx_ref=tx_ref)
        receipt = await self.wait_for_receipt(tx_ref)

        gas_price = receipt.get("effectiveGasPrice", tx.get("gasPrice", 0))
        gas_spent = int(receipt["gasUsed"]) * int(gas_price)
        if receipt["status"] != 1:
            self._logger.error("transaction_reverted", label=label, tx_ref=tx_ref)
            raise TransactionFailedError(
                f"{label} transaction reverted", tx_ref=tx_ref, gas_spent_native=gas_spent
            )

        self._logger.info(
            "transaction_confirmed",
            label=label,
            tx_ref=tx_ref,
            block_number=receipt.get("blockNumber"),
            gas_spent=gas_spent,
        )
        return SubmittedTx(
            tx_ref=tx_ref,
            gas_spent_native=gas_spent,
            block_number=receipt.get("blockNumber"),
        )

    async def wait_for_receipt(self, tx_ref: str) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(
                self.w3.eth.wait_for_transaction_receipt,
                tx_ref,
                timeout=self.confirmation_timeout_seconds,
            )
        except TimeExhausted:
            self._logger.error(
                "transaction_confirmation_timeout",
                tx_ref=tx_ref,
                timeout_seconds=self.confirmation_timeout_seconds,
            )
            raise ConfirmationTimeoutError(
                f"Transaction {tx_ref} not confirmed within {self.confirmation_timeout_seconds}s",
                tx_ref=tx_ref,
            ) from None
