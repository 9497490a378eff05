"""Solana signers: leased fee payers and the funding ops wallet"""

import json
from typing import Optional

from solders.keypair import Keypair
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from src.errors import ConfigurationError


def keypair_from_secret(secret: str, label: str = "Stored fee payer key") -> Keypair:
    """Accept a base58 secret or a JSON byte array as exported by solana-keygen"""
    value = secret.strip()
    try:
        if value.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(value)))
        return Keypair.from_base58_string(value)
    except ValueError:
        raise ConfigurationError(f"{label} is malformed") from None


class SolanaSigner:
    """Holds one keypair; signs Jupiter swaps in place and transfers it compiles"""

    def __init__(self, keypair: Keypair, fee_payer_id: Optional[int] = None):
        self.__keypair = keypair
        self.fee_payer_id = fee_payer_id
        self.address: str = str(keypair.pubkey())

    def __repr__(self) -> str:
        return f"SolanaSigner(address={self.address}, fee_payer_id={self.fee_payer_id})"

    def sign_message(self, message: MessageV0) -> VersionedTransaction:
        return VersionedTransaction(message, [self.__keypair])

    def sign_transaction(self, unsigned: VersionedTransaction) -> VersionedTransaction:
        return self.sign_message(unsigned.message)
