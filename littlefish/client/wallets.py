"""
Key-backed wallet extensions.

Wallets hold pycardano signing keys and produce real CIP-8 message signatures and
vkey witnesses. They come from a YAML key file (``WALLET_BACKEND=keyfile``) or are
generated on the fly (``WALLET_BACKEND=ephemeral``).

Key file layout, one mapping per network:

    mainnet:
      Nami:
        private_key: 5820...   # payment signing key, hex
        stake_key: 5820...     # optional stake signing key, hex
        icon: https://...
        version: 3.8.0
"""

from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from blockfrost import ApiError
from pycardano import (
    Address,
    BlockFrostChainContext,
    Network,
    PaymentSigningKey,
    StakeSigningKey,
    Transaction,
    TransactionWitnessSet,
    VerificationKeyWitness,
)
from pycardano.cip import cip8
from requests import RequestException

from littlefish.client.wallet_provider import (
    BalanceUnavailable,
    SignatureDeclined,
    UserRejected,
    WalletApi,
    WalletBalance,
    WalletDescriptor,
    WalletError,
    WalletExtension,
)
from littlefish.core.config import settings
from littlefish.services.indexer import BLOCKFROST_ENDPOINTS

# (prompt kind, what is being approved) -> approved?
Approver = Callable[[str, str], bool]


def auto_approve(kind: str, subject: str) -> bool:
    return True


def cardano_network(name: str) -> Network:
    return Network.MAINNET if name == "mainnet" else Network.TESTNET


def _load_signing_key(cls, value: str):
    raw = bytes.fromhex(value)
    # cbor wrapped 32 byte key (5820...) or the bare key
    if len(raw) == 34 and raw[:2] == b"\x58\x20":
        raw = raw[2:]
    return cls.from_primitive(raw)


class KeyWalletApi(WalletApi):
    def __init__(
        self,
        signing_key: PaymentSigningKey,
        network: Network,
        stake_signing_key: Optional[StakeSigningKey] = None,
        approve: Approver = auto_approve,
        chain_context: Any = None,
    ):
        self.signing_key = signing_key
        self.verification_key = signing_key.to_verification_key()
        self.network = network
        self.approve = approve
        self.chain_context = chain_context
        stake_part = None
        self.reward_address: Optional[Address] = None
        if stake_signing_key is not None:
            stake_part = stake_signing_key.to_verification_key().hash()
            self.reward_address = Address(staking_part=stake_part, network=network)
        self.address = Address(
            payment_part=self.verification_key.hash(),
            staking_part=stake_part,
            network=network,
        )

    def get_network(self) -> str:
        return "mainnet" if self.network == Network.MAINNET else "testnet"

    def get_change_address(self) -> str:
        return self.address.encode()

    def get_reward_address(self) -> Optional[str]:
        return self.reward_address.encode() if self.reward_address else None

    def get_balance(self) -> WalletBalance:
        if self.chain_context is None:
            raise BalanceUnavailable("Wallet has no chain context to read its balance")
        try:
            utxos = self.chain_context.utxos(self.address)
        except (ApiError, RequestException) as e:
            raise BalanceUnavailable(f"Wallet balance could not be read: {e}") from e
        balance = WalletBalance()
        totals: Dict[str, int] = {}
        for utxo in utxos:
            amount = utxo.output.amount
            if isinstance(amount, int):
                balance.lovelace += amount
                continue
            balance.lovelace += amount.coin
            for policy_id, assets in amount.multi_asset.items():
                for asset_name, quantity in assets.items():
                    unit = policy_id.payload.hex() + asset_name.payload.hex()
                    totals[unit] = totals.get(unit, 0) + quantity
        balance.assets = [{"unit": u, "quantity": str(q)} for u, q in totals.items()]
        return balance

    def sign_data(self, address: str, message: str) -> Dict[str, str]:
        try:
            requested = Address.decode(address)
        except Exception as e:
            raise WalletError(f"Invalid address: {address}") from e
        if requested.payment_part != self.address.payment_part:
            raise WalletError("Address is not controlled by this wallet")
        if not self.approve("sign_data", message):
            raise SignatureDeclined("User declined to sign the message")
        return cip8.sign(message, self.signing_key, attach_cose_key=True, network=self.network)

    def sign_tx(self, tx: Transaction) -> Transaction:
        tx_hash = tx.transaction_body.hash()
        if not self.approve("sign_tx", tx_hash.hex()):
            raise SignatureDeclined("User declined to sign the transaction")
        witness = VerificationKeyWitness(self.verification_key, self.signing_key.sign(tx_hash))
        existing = tx.transaction_witness_set.vkey_witnesses or []
        return Transaction(
            tx.transaction_body,
            TransactionWitnessSet(vkey_witnesses=list(existing) + [witness]),
            auxiliary_data=tx.auxiliary_data,
        )


class KeyWallet(WalletExtension):
    def __init__(
        self,
        descriptor: WalletDescriptor,
        signing_key: PaymentSigningKey,
        network: Network,
        stake_signing_key: Optional[StakeSigningKey] = None,
        approve: Approver = auto_approve,
        chain_context: Any = None,
    ):
        self.descriptor = descriptor
        self.signing_key = signing_key
        self.stake_signing_key = stake_signing_key
        self.network = network
        self.approve = approve
        self.chain_context = chain_context

    def enable(self) -> KeyWalletApi:
        if not self.approve("enable", self.descriptor.name):
            raise UserRejected(f"User declined to connect {self.descriptor.name}")
        return KeyWalletApi(
            self.signing_key,
            self.network,
            stake_signing_key=self.stake_signing_key,
            approve=self.approve,
            chain_context=self.chain_context,
        )


def get_chain_context(
    network: str = settings.CARDANO_NETWORK,
    project_id: Optional[str] = None,
) -> Optional[BlockFrostChainContext]:
    """Blockfrost chain context for wallet balances, None without an API key."""
    project_id = project_id or settings.BLOCKFROST_API_KEY
    if not project_id:
        return None
    return BlockFrostChainContext(
        project_id=project_id,
        base_url=BLOCKFROST_ENDPOINTS.get(network, BLOCKFROST_ENDPOINTS["mainnet"]),
    )


def ephemeral_wallet(
    name: str = "TestWallet",
    network: str = "mainnet",
    approve: Approver = auto_approve,
    chain_context: Any = None,
) -> KeyWallet:
    """A wallet with freshly generated payment and stake keys."""
    return KeyWallet(
        WalletDescriptor(name=name, version="1.0.0"),
        PaymentSigningKey.generate(),
        cardano_network(network),
        stake_signing_key=StakeSigningKey.generate(),
        approve=approve,
        chain_context=chain_context,
    )


def load_wallets(
    path: Path,
    network: str = "mainnet",
    approve: Approver = auto_approve,
    chain_context: Any = None,
) -> Dict[str, KeyWallet]:
    if not path.exists():
        raise WalletError(f"wallet key file not found: {path}")
    try:
        with open(path, "r") as file:
            data = yaml.safe_load(file) or {}
    except yaml.YAMLError as exc:
        raise WalletError(f"failed to parse wallet key file: {exc}") from exc

    entries = data.get(network) or {}
    if not isinstance(entries, dict):
        raise WalletError(f"wallet entries for '{network}' must be a mapping")

    wallets: Dict[str, KeyWallet] = {}
    for name, entry in entries.items():
        if not isinstance(entry, dict) or not isinstance(entry.get("private_key"), str):
            raise WalletError(f"wallet '{name}' must include a private_key")
        stake_key = entry.get("stake_key")
        wallets[name] = KeyWallet(
            WalletDescriptor(name=name, icon=entry.get("icon", ""), version=str(entry.get("version", ""))),
            _load_signing_key(PaymentSigningKey, entry["private_key"]),
            cardano_network(network),
            stake_signing_key=_load_signing_key(StakeSigningKey, stake_key) if stake_key else None,
            approve=approve,
            chain_context=chain_context,
        )
    return wallets


def build_extensions(
    backend: str = settings.WALLET_BACKEND,
    keys_path: Optional[str] = settings.WALLET_KEYS_PATH,
    network: str = settings.CARDANO_NETWORK,
    approve: Approver = auto_approve,
    chain_context: Any = None,
) -> Dict[str, WalletExtension]:
    """
    Installed wallet extensions for the configured backend.

    Balances are read through ``chain_context``, which defaults to a Blockfrost
    context when BLOCKFROST_API_KEY is set.
    """
    if backend == "none":
        return {}
    if backend not in ("ephemeral", "keyfile"):
        raise WalletError(f"unsupported wallet backend: {backend}")
    if backend == "keyfile" and not keys_path:
        raise WalletError("WALLET_KEYS_PATH is required for the keyfile wallet backend")
    if chain_context is None:
        chain_context = get_chain_context(network)
    if backend == "ephemeral":
        return {"TestWallet": ephemeral_wallet("TestWallet", network, approve, chain_context)}
    return dict(load_wallets(Path(keys_path), network, approve, chain_context))
