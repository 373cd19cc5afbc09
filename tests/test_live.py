"""Read-only checks against a live chain.

Set ``JSON_RPC_URL`` to run. Nothing is broadcasted.
"""

import os

import pytest

from eth_keyless.deployer import calculate_deployer_address, calculate_gas_limit
from eth_keyless.keyless import fetch_deployed_code
from eth_keyless.provider import create_keyless_web3
from eth_keyless.static import DEPLOYER_ADDRESS, DEPLOYER_KEYLESS_ACCOUNT

JSON_RPC_URL = os.environ.get("JSON_RPC_URL")

pytestmark = pytest.mark.skipif(JSON_RPC_URL is None, reason="This test needs JSON_RPC_URL environment variable")


@pytest.fixture(scope="module")
def web3():
    return create_keyless_web3(JSON_RPC_URL)


def test_live_deployer_address(web3):
    """Same addresses on a live chain as offline."""
    deployer_address, keyless_account = calculate_deployer_address(web3)
    assert deployer_address == DEPLOYER_ADDRESS
    assert keyless_account == DEPLOYER_KEYLESS_ACCOUNT
    assert calculate_gas_limit(web3) == 335_720


def test_live_deployer_code(web3):
    """If somebody deployed the Deployer here, it has the expected runtime code."""
    code = fetch_deployed_code(web3, DEPLOYER_ADDRESS)
    if len(code) == 0:
        pytest.skip(f"Deployer not deployed on chain {web3.eth.chain_id}")
    assert len(code) == 0x501
