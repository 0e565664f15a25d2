"""
Cardano Wallet Authentication Utilities

This module handles the Cardano-specific parts of linking a wallet to an account.

Authentication Flow:
1. Backend issues a human readable challenge -> generate_challenge()
2. Frontend signs the challenge with the wallet (CIP-30 signData, CIP-8 message)
3. Frontend sends: address, message, signature and optionally the COSE key
4. Backend verifies: verify_signature()
   - Verifies the ED25519 signature over exactly the challenge message
   - Verifies the signing key matches the payment credential of the address
   - Returns the normalized address if valid

Two signature encodings are accepted:
- CIP-8 COSE_Sign1 (what browser wallets return), verified with pycardano.cip.cip8
- raw 64 byte ED25519 signature plus public key (hex or base64)
"""

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from pycardano import Address, Network
from pycardano.cip import cip8
from pycardano.key import VerificationKey

logger = logging.getLogger(__name__)

RAW_SIGNATURE_NUM_BYTES = 64

NETWORK_NAMES = {
    Network.MAINNET: "mainnet",
    Network.TESTNET: "testnet",
}


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def generate_challenge(service_name: str, now: Optional[datetime] = None) -> str:
    """
    Build the challenge message the wallet will show in its signing prompt.

    Example:
        >>> generate_challenge("Littlefish Foundation", datetime(2024, 1, 1, tzinfo=timezone.utc))
        'Authenticate with Littlefish Foundation: 2024-01-01T00:00:00.000Z'
    """
    return f"Authenticate with {service_name}: {format_timestamp(now or datetime.now(timezone.utc))}"


def _decode_hex(value: str) -> bytes:
    """Helper: Decode hex string to bytes."""
    return binascii.unhexlify(value.encode())


def _decode_base64(value: str) -> bytes:
    """Helper: Decode base64 string to bytes."""
    return base64.b64decode(value, validate=True)


def _decode_hex_or_base64(value: str) -> bytes:
    """
    Helper: Decode hex or base64 string to bytes.

    Cardano wallets may send signatures/keys in either format, so we support both.
    """
    value = value.strip()
    try:
        return _decode_hex(value)
    except (binascii.Error, ValueError):
        try:
            return _decode_base64(value)
        except (binascii.Error, ValueError):
            raise ValueError("Value must be hex or base64 encoded")


def decode_address(address: str) -> Optional[Address]:
    try:
        return Address.decode(address.strip())
    except Exception:
        return None


def address_network(address: str) -> str:
    """Return ``mainnet`` or ``testnet`` for a bech32 address."""
    decoded = decode_address(address)
    if decoded is None:
        raise ValueError(f"Invalid Cardano address: {address}")
    return NETWORK_NAMES.get(decoded.network, "testnet")


def _key_matches_address(addr: Address, public_key_bytes: bytes) -> bool:
    try:
        v_key = VerificationKey.from_primitive(public_key_bytes)
        return addr.payment_part == v_key.hash()
    except Exception:
        return False


def _verify_raw(addr: Address, message: str, signature_bytes: bytes, key: str) -> bool:
    try:
        public_key_bytes = _decode_hex_or_base64(key)
        Ed25519PublicKey.from_public_bytes(public_key_bytes).verify(signature_bytes, message.encode("utf-8"))
    except (InvalidSignature, ValueError):
        return False
    return _key_matches_address(addr, public_key_bytes)


def _verify_cip8(addr: Address, message: str, signature: str, key: Optional[str]) -> bool:
    signed_message = {"signature": signature, "key": key} if key else signature
    try:
        result = cip8.verify(signed_message, key is not None)
    except Exception as e:
        logger.info("CIP-8 signature could not be decoded: %s", e)
        return False

    if not result.get("verified"):
        return False
    if result.get("message") != message:
        return False
    signing_address = result.get("signing_address")
    return signing_address is not None and signing_address.payment_part == addr.payment_part


def verify_signature(address: str, message: str, signature: str, key: Optional[str] = None) -> Tuple[bool, str]:
    """
    Verify a Cardano wallet signature over ``message`` and return the normalized address.

    Args:
        address: Cardano wallet address (e.g., "addr1...")
        message: The exact challenge string that was signed
        signature: CIP-8 COSE_Sign1 hex, or raw ED25519 signature (hex or base64)
        key: CIP-30 COSE_Key hex, or raw ED25519 public key (hex or base64)

    Returns:
        Tuple of (is_valid: bool, normalized_address: str)
        - If valid: (True, normalized_address)
        - If invalid: (False, "")
    """
    addr = decode_address(address)
    if addr is None:
        return False, ""

    raw_signature: Optional[bytes] = None
    try:
        decoded = _decode_hex_or_base64(signature)
        if len(decoded) == RAW_SIGNATURE_NUM_BYTES:
            raw_signature = decoded
    except ValueError:
        return False, ""

    if raw_signature is not None and key:
        is_valid = _verify_raw(addr, message, raw_signature, key)
    else:
        is_valid = _verify_cip8(addr, message, signature.strip(), key.strip() if key else None)

    if not is_valid:
        return False, ""
    return True, addr.encode()
