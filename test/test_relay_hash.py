#!/usr/bin/env python3
"""Tests for relay hashing."""

import pytest
from eth_abi import encode
from web3 import Web3

from relay_resolver.models import RelayTerms
from relay_resolver.relay_hash import (
    ZERO_BYTES32,
    get_message_hash,
    normalize_key,
    relay_key_from_event_args,
    to_bytes32,
)

DEPOSITOR = "0x" + "11" * 20
RECIPIENT = "0x" + "22" * 20
INPUT_TOKEN = "0x" + "33" * 20
OUTPUT_TOKEN = "0x" + "44" * 20
DESTINATION_CHAIN_ID = 10


@pytest.fixture
def terms():
    """A relay from mainnet to Optimism carrying a short message."""
    return RelayTerms(
        depositor=DEPOSITOR,
        recipient=RECIPIENT,
        exclusive_relayer="0x" + "00" * 20,
        input_token=INPUT_TOKEN,
        output_token=OUTPUT_TOKEN,
        input_amount=10**18,
        output_amount=10**18 - 5000,
        origin_chain_id=1,
        deposit_id=4242,
        fill_deadline=1_700_003_600,
        exclusivity_deadline=0,
        message="0xdeadbeef",
    )


def event_args(terms: RelayTerms) -> dict:
    return {
        "depositor": to_bytes32(terms.depositor),
        "recipient": to_bytes32(terms.recipient),
        "exclusiveRelayer": to_bytes32(terms.exclusive_relayer),
        "inputToken": to_bytes32(terms.input_token),
        "outputToken": to_bytes32(terms.output_token),
        "inputAmount": terms.input_amount,
        "outputAmount": terms.output_amount,
        "originChainId": terms.origin_chain_id,
        "depositId": terms.deposit_id,
        "fillDeadline": terms.fill_deadline,
        "exclusivityDeadline": terms.exclusivity_deadline,
        "messageHash": Web3.to_bytes(hexstr=terms.message_hash),
    }


class TestMessageHash:
    """Tests for hashing the relay message."""

    def test_empty_message(self):
        """Test that an empty message hashes to zero."""
        assert get_message_hash(b"") == Web3.to_hex(ZERO_BYTES32)
        assert get_message_hash("0x") == Web3.to_hex(ZERO_BYTES32)

    def test_message(self):
        """Test that a message hashes to its keccak256."""
        assert get_message_hash("0xdeadbeef") == Web3.to_hex(Web3.keccak(hexstr="0xdeadbeef"))


class TestBytes32:
    """Tests for left-padding values to bytes32."""

    def test_address_padding(self):
        """Test that a 20-byte address is left-padded."""
        padded = to_bytes32(DEPOSITOR)

        assert len(padded) == 32
        assert padded[:12] == b"\x00" * 12
        assert padded[12:] == b"\x11" * 20

    def test_too_long(self):
        """Test that values over 32 bytes are rejected."""
        with pytest.raises(ValueError):
            to_bytes32("0x" + "ff" * 33)

    def test_wrong_type(self):
        """Test that non-hex values are rejected."""
        with pytest.raises(TypeError):
            to_bytes32(12)


class TestRelayKey:
    """Tests for the RelayKey and relay data hash."""

    def test_relay_key_from_events_matches_terms(self, terms):
        """Test that the key recomputed from event args equals the key of the terms."""
        assert relay_key_from_event_args(event_args(terms), DESTINATION_CHAIN_ID) == terms.relay_key(
            DESTINATION_CHAIN_ID
        )

    def test_relay_key_encoding(self, terms):
        """Test the RelayKey against a manual ABI encoding."""
        encoded = encode(
            ["(bytes32,bytes32,bytes32,bytes32,bytes32,uint256,uint256,uint256,uint256,uint32,uint32,bytes32)", "uint256"],
            [
                (
                    to_bytes32(DEPOSITOR),
                    to_bytes32(RECIPIENT),
                    ZERO_BYTES32,
                    to_bytes32(INPUT_TOKEN),
                    to_bytes32(OUTPUT_TOKEN),
                    10**18,
                    10**18 - 5000,
                    1,
                    4242,
                    1_700_003_600,
                    0,
                    Web3.keccak(hexstr="0xdeadbeef"),
                ),
                DESTINATION_CHAIN_ID,
            ],
        )

        assert terms.relay_key(DESTINATION_CHAIN_ID) == Web3.to_hex(Web3.keccak(encoded))

    def test_destination_changes_key(self, terms):
        """Test that the destination chain is part of the key."""
        assert terms.relay_key(10) != terms.relay_key(130)

    def test_relay_data_hash_differs_from_key(self, terms):
        """Test that the full message hash and the RelayKey are distinct."""
        data_hash = terms.relay_data_hash(DESTINATION_CHAIN_ID)

        assert data_hash != terms.relay_key(DESTINATION_CHAIN_ID)
        assert data_hash.startswith("0x") and len(data_hash) == 66

    def test_missing_event_arg(self, terms):
        """Test that incomplete event args give no key."""
        args = event_args(terms)
        del args["messageHash"]

        assert relay_key_from_event_args(args, DESTINATION_CHAIN_ID) is None

    def test_normalize_key(self):
        """Test the comparison form of keys."""
        assert normalize_key("ABCD") == "0xabcd"
        assert normalize_key("0xABCD") == "0xabcd"
