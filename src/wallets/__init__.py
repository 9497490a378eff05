"""Signing keys: EVM ops wallet, leased Solana fee payers and their funding"""

from src.wallets.evm_wallet import EvmOpsWallet
from src.wallets.fee_payers import FeePayerPool
from src.wallets.funding import FeePayerFunder, FeePayerFundingReport
from src.wallets.provider import OpsWalletProvider, WalletProvider
from src.wallets.secrets import decrypt_secret, encrypt_secret
from src.wallets.solana_signer import SolanaSigner, keypair_from_secret

__all__ = [
    "EvmOpsWallet",
    "FeePayerFunder",
    "FeePayerFundingReport",
    "FeePayerPool",
    "OpsWalletProvider",
    "SolanaSigner",
    "WalletProvider",
    "decrypt_secret",
    "encrypt_secret",
    "keypair_from_secret",
]
