"""EVM operations wallet"""

from typing import Any, Dict, Optional

from eth_account import Account
from pydantic import SecretStr

from src.errors import ConfigurationError


class EvmOpsWallet:
    """
    Holds the EVM ops private key and signs transactions.

    Only the address leaves this object; the key is not exposed through
    attributes, repr or errors.
    """

    def __init__(self, private_key: Optional[SecretStr]):
        if private_key is None or not private_key.get_secret_value():
            raise ConfigurationError("EVM_OPS_PRIVATE_KEY is required for EVM execution")
        key = private_key.get_secret_value().strip()
        if not key.startswith("0x"):
            key = "0x" + key
        try:
            self.__account = Account.from_key(key)
        except (ValueError, TypeError):
            raise ConfigurationError("EVM_OPS_PRIVATE_KEY is not a valid private key") from None
        self.address: str = self.__account.address

    def __repr__(self) -> str:
        return f"EvmOpsWallet(address={self.address})"

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        """Sign a transaction dict and return the raw bytes for broadcast"""
        signed = self.__account.sign_transaction(tx)
        return signed.raw_transaction
