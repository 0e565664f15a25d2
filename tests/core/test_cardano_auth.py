import base64
from datetime import datetime, timedelta, timezone

import pytest
from pycardano import Address, Network, PaymentSigningKey, StakeSigningKey
from pycardano.cip import cip8

from littlefish.core.cardano_auth import (
    address_network,
    format_timestamp,
    generate_challenge,
    verify_signature,
)


@pytest.fixture
def signing_key() -> PaymentSigningKey:
    return PaymentSigningKey.generate()


def base_address(signing_key: PaymentSigningKey, network: Network = Network.MAINNET) -> str:
    stake = StakeSigningKey.generate().to_verification_key().hash()
    return Address(
        payment_part=signing_key.to_verification_key().hash(),
        staking_part=stake,
        network=network,
    ).encode()


class TestChallenge:
    def test_challenge_format(self):
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert generate_challenge("Littlefish Foundation", moment) == (
            "Authenticate with Littlefish Foundation: 2024-01-01T00:00:00.000Z"
        )

    def test_timestamp_keeps_milliseconds(self):
        moment = datetime(2024, 5, 17, 8, 30, 1, 123456, tzinfo=timezone.utc)
        assert format_timestamp(moment) == "2024-05-17T08:30:01.123Z"

    def test_timestamp_converts_to_utc(self):
        moment = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(moment) == "2024-01-01T00:00:00.000Z"

    def test_challenges_differ_over_time(self):
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
        later = moment + timedelta(milliseconds=1)
        assert generate_challenge("X", moment) != generate_challenge("X", later)


class TestAddressNetwork:
    def test_mainnet(self, signing_key):
        assert address_network(base_address(signing_key)) == "mainnet"

    def test_testnet(self, signing_key):
        assert address_network(base_address(signing_key, Network.TESTNET)) == "testnet"

    def test_invalid(self):
        with pytest.raises(ValueError):
            address_network("addr1notanaddress")


class TestVerifySignature:
    message = "Authenticate with Littlefish Foundation: 2024-01-01T00:00:00.000Z"

    def test_cip8_with_cose_key(self, signing_key):
        address = base_address(signing_key)
        signed = cip8.sign(self.message, signing_key, attach_cose_key=True, network=Network.MAINNET)

        assert verify_signature(address, self.message, signed["signature"], signed["key"]) == (True, address)

    def test_cip8_wrong_message(self, signing_key):
        address = base_address(signing_key)
        signed = cip8.sign("something else", signing_key, attach_cose_key=True, network=Network.MAINNET)

        assert verify_signature(address, self.message, signed["signature"], signed["key"]) == (False, "")

    def test_cip8_key_not_matching_address(self, signing_key):
        address = base_address(PaymentSigningKey.generate())
        signed = cip8.sign(self.message, signing_key, attach_cose_key=True, network=Network.MAINNET)

        assert verify_signature(address, self.message, signed["signature"], signed["key"])[0] is False

    def test_raw_signature_hex(self, signing_key):
        address = base_address(signing_key)
        signature = signing_key.sign(self.message.encode("utf-8"))
        key = signing_key.to_verification_key().payload

        assert verify_signature(address, self.message, signature.hex(), key.hex()) == (True, address)

    def test_raw_signature_base64(self, signing_key):
        address = base_address(signing_key)
        signature = signing_key.sign(self.message.encode("utf-8"))
        key = signing_key.to_verification_key().payload

        is_valid, _ = verify_signature(
            address,
            self.message,
            base64.b64encode(signature).decode(),
            base64.b64encode(key).decode(),
        )
        assert is_valid

    def test_raw_signature_tampered(self, signing_key):
        address = base_address(signing_key)
        signature = bytearray(signing_key.sign(self.message.encode("utf-8")))
        signature[0] ^= 0xFF
        key = signing_key.to_verification_key().payload

        assert verify_signature(address, self.message, bytes(signature).hex(), key.hex()) == (False, "")

    def test_invalid_address(self, signing_key):
        signature = signing_key.sign(self.message.encode("utf-8"))
        key = signing_key.to_verification_key().payload

        assert verify_signature("not-an-address", self.message, signature.hex(), key.hex()) == (False, "")

    def test_undecodable_signature(self, signing_key):
        assert verify_signature(base_address(signing_key), self.message, "%%%") == (False, "")
