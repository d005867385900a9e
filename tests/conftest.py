"""Shared fixtures: a two-network registry (hii <-> sepolia)."""

import pytest

from lzbridge.core.registry import (
    NetworkConfig,
    NetworkRegistry,
    SupportedPair,
    TokenDescriptor,
)


HII_OFT = "0x1111111111111111111111111111111111111111"
SEPOLIA_OFT = "0x2222222222222222222222222222222222222222"
HII_NATIVE_ADAPTER = "0x3333333333333333333333333333333333333333"
HII_ENDPOINT = "0xa1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1a1"
SEPOLIA_ENDPOINT = "0xb1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1b1"
SEPOLIA_DVN = "0xb2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2b2"
RECEIVER = "0x4444444444444444444444444444444444444444"

HII_EID = 40_420
SEPOLIA_EID = 40_161


def make_networks():
    return {
        "hii": NetworkConfig(
            key="hii",
            name="HII Testnet",
            chain_id=4242,
            rpc_http="http://hii.invalid",
            eid=HII_EID,
            endpoint_v2=HII_ENDPOINT,
            dvn="0xa2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2a2",
            executor="0xa3a3a3a3a3a3a3a3a3a3a3a3a3a3a3a3a3a3a3a3",
            oft=HII_OFT,
            explorer_tx_base="https://explorer.hii.invalid/tx/",
            scan_network="testnet",
        ),
        "sepolia": NetworkConfig(
            key="sepolia",
            name="Sepolia",
            chain_id=11155111,
            rpc_http="http://sepolia.invalid",
            eid=SEPOLIA_EID,
            endpoint_v2=SEPOLIA_ENDPOINT,
            dvn=SEPOLIA_DVN,
            executor="0xb3b3b3b3b3b3b3b3b3b3b3b3b3b3b3b3b3b3b3b3",
            oft=SEPOLIA_OFT,
            explorer_tx_base="https://sepolia.etherscan.io/tx/",
        ),
    }


@pytest.fixture
def networks():
    return make_networks()


@pytest.fixture
def registry(networks):
    tokens = [
        TokenDescriptor(
            id="default",
            symbol="OFT",
            name="OFT Token",
            addresses={"hii": HII_OFT, "sepolia": SEPOLIA_OFT},
        ),
        TokenDescriptor(
            id="hii_native",
            symbol="HII",
            name="Native HII",
            addresses={"hii": HII_NATIVE_ADAPTER},
            native_adapter=True,
        ),
    ]
    pairs = [SupportedPair("hii", "sepolia"), SupportedPair("sepolia", "hii")]
    return NetworkRegistry(networks, tokens, pairs)
