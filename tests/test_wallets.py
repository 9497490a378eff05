"""Tests for signing key handling and the fee payer pool"""

import json
from unittest.mock import AsyncMock

import pytest
from pydantic import SecretStr
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from src.database.models import FeePayerKey
from src.errors import ConfigurationError, NoActiveSignerError
from src.wallets import (
    EvmOpsWallet,
    FeePayerPool,
    OpsWalletProvider,
    SolanaSigner,
    WalletProvider,
    decrypt_secret,
    encrypt_secret,
    keypair_from_secret,
)

from tests.factories import make_system_settings

# Well-known development key; never funded on any mainnet
DEV_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
DEV_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"

ENCRYPTION_KEY = SecretStr("local-test-encryption-key")


class TestSecrets:
    """Stored key encryption"""

    def test_encrypt_then_decrypt(self):
        token = encrypt_secret("secret-material", ENCRYPTION_KEY)

        assert token.startswith("enc:v1:")
        assert "secret-material" not in token
        assert decrypt_secret(token, ENCRYPTION_KEY) == "secret-material"

    def test_plaintext_is_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            decrypt_secret("secret-material", ENCRYPTION_KEY)

        assert "secret-material" not in exc_info.value.message

    def test_wrong_key_is_rejected(self):
        token = encrypt_secret("secret-material", ENCRYPTION_KEY)

        with pytest.raises(ConfigurationError):
            decrypt_secret(token, SecretStr("another-key"))

    def test_missing_key_is_rejected(self):
        with pytest.raises(ConfigurationError):
            encrypt_secret("secret-material", None)


class TestEvmOpsWallet:
    """EVM ops wallet"""

    def test_derives_address(self):
        wallet = EvmOpsWallet(SecretStr(DEV_PRIVATE_KEY))

        assert wallet.address == DEV_ADDRESS

    def test_accepts_key_without_prefix(self):
        wallet = EvmOpsWallet(SecretStr(DEV_PRIVATE_KEY[2:]))

        assert wallet.address == DEV_ADDRESS

    def test_key_never_rendered(self):
        wallet = EvmOpsWallet(SecretStr(DEV_PRIVATE_KEY))

        assert DEV_PRIVATE_KEY[2:] not in repr(wallet)

    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            EvmOpsWallet(None)

    def test_invalid_key_error_does_not_echo_input(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EvmOpsWallet(SecretStr("0x1234"))

        assert "1234" not in exc_info.value.message

    def test_provider_caches_per_network(self):
        provider = OpsWalletProvider(SecretStr(DEV_PRIVATE_KEY))

        assert provider.get_wallet("POLYGON_AMOY") is provider.get_wallet("POLYGON_AMOY")

    def test_provider_rejects_solana(self):
        provider = OpsWalletProvider(SecretStr(DEV_PRIVATE_KEY))

        with pytest.raises(ConfigurationError):
            provider.get_wallet("SOLANA_DEVNET")


class TestSolanaKeys:
    """Fee payer key parsing"""

    def test_base58_and_json_formats(self):
        keypair = Keypair()

        from_base58 = keypair_from_secret(str(keypair))
        from_json = keypair_from_secret(json.dumps(list(bytes(keypair))))

        assert from_base58.pubkey() == keypair.pubkey()
        assert from_json.pubkey() == keypair.pubkey()

    def test_malformed(self):
        with pytest.raises(ConfigurationError):
            keypair_from_secret("[1, 2, 3]")

    def test_malformed_error_names_the_key_and_not_its_value(self):
        with pytest.raises(ConfigurationError) as exc_info:
            keypair_from_secret("[9, 9, 9]", label="SOLANA_OPS_SECRET_KEY")

        assert exc_info.value.message == "SOLANA_OPS_SECRET_KEY is malformed"

    def test_signs_compiled_message(self):
        keypair = Keypair()
        signer = SolanaSigner(keypair)
        message = MessageV0.try_compile(
            keypair.pubkey(),
            [transfer(TransferParams(from_pubkey=keypair.pubkey(), to_pubkey=Pubkey.default(), lamports=1))],
            [],
            Hash.default(),
        )

        signed = signer.sign_message(message)

        assert signed.signatures[0] == keypair.sign_message(to_bytes_versioned(message))
        assert str(keypair) not in repr(signer)


def _pool_db_manager():
    db_manager = AsyncMock()
    db_manager.get_system_settings.return_value = make_system_settings()
    return db_manager


def _fee_payer_row(keypair: Keypair, fee_payer_id: int = 1) -> FeePayerKey:
    return FeePayerKey(
        id=fee_payer_id,
        public_key=str(keypair.pubkey()),
        encrypted_secret_key=encrypt_secret(str(keypair), ENCRYPTION_KEY),
        usage_count=3,
    )


class TestFeePayerPool:
    """Leasing from the fee payer table"""

    @pytest.mark.asyncio
    async def test_lease_yields_signer_and_releases(self):
        keypair = Keypair()
        db_manager = _pool_db_manager()
        db_manager.lease_fee_payer.return_value = _fee_payer_row(keypair, 7)
        pool = FeePayerPool(db_manager, ENCRYPTION_KEY, lease_seconds=60)

        async with pool.lease() as signer:
            assert signer.address == str(keypair.pubkey())
            assert signer.fee_payer_id == 7
            db_manager.release_fee_payer.assert_not_called()

        db_manager.lease_fee_payer.assert_awaited_once_with(
            60, least_used_first=True, min_balance_lamports=50_000_000
        )
        db_manager.release_fee_payer.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_lease_released_when_body_raises(self):
        db_manager = _pool_db_manager()
        db_manager.lease_fee_payer.return_value = _fee_payer_row(Keypair(), 2)
        pool = FeePayerPool(db_manager, ENCRYPTION_KEY)

        with pytest.raises(RuntimeError):
            async with pool.lease():
                raise RuntimeError("swap failed")

        db_manager.release_fee_payer.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_no_active_fee_payers(self):
        db_manager = _pool_db_manager()
        db_manager.lease_fee_payer.return_value = None
        db_manager.count_active_fee_payers.return_value = 0
        pool = FeePayerPool(db_manager, ENCRYPTION_KEY)

        with pytest.raises(NoActiveSignerError) as exc_info:
            async with pool.lease():
                pass

        assert "No active fee payer" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_all_fee_payers_leased_or_low(self):
        db_manager = _pool_db_manager()
        db_manager.lease_fee_payer.return_value = None
        db_manager.count_active_fee_payers.return_value = 3
        pool = FeePayerPool(db_manager, ENCRYPTION_KEY)

        with pytest.raises(NoActiveSignerError) as exc_info:
            async with pool.lease():
                pass

        assert "None of 3 active fee payers" in exc_info.value.message
        assert "50000000 lamports" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_undecryptable_key_still_releases(self):
        row = _fee_payer_row(Keypair(), 4)
        db_manager = _pool_db_manager()
        db_manager.lease_fee_payer.return_value = row
        pool = FeePayerPool(db_manager, SecretStr("rotated-key"))

        with pytest.raises(ConfigurationError):
            async with pool.lease():
                pass

        db_manager.release_fee_payer.assert_awaited_once_with(4)


class TestWalletProvider:
    """Signer selection per chain family"""

    @pytest.mark.asyncio
    async def test_evm_network_yields_ops_wallet(self):
        provider = WalletProvider(OpsWalletProvider(SecretStr(DEV_PRIVATE_KEY)))

        async with provider.signer("POLYGON_AMOY") as signer:
            assert signer.address == DEV_ADDRESS

    @pytest.mark.asyncio
    async def test_solana_without_pool_is_configuration_error(self):
        provider = WalletProvider(OpsWalletProvider(None))

        with pytest.raises(ConfigurationError):
            async with provider.signer("SOLANA_DEVNET"):
                pass

    @pytest.mark.asyncio
    async def test_solana_leases_fee_payer(self):
        keypair = Keypair()
        db_manager = _pool_db_manager()
        db_manager.lease_fee_payer.return_value = _fee_payer_row(keypair, 9)
        provider = WalletProvider(
            OpsWalletProvider(None), FeePayerPool(db_manager, ENCRYPTION_KEY)
        )

        async with provider.signer("SOLANA_DEVNET") as signer:
            assert signer.address == str(keypair.pubkey())

        db_manager.release_fee_payer.assert_awaited_once_with(9)
