"""Broadcast timeouts and funding."""

import datetime
import secrets
from unittest.mock import MagicMock

import pytest
import requests
from eth_account import Account
from hexbytes import HexBytes
from web3 import EthereumTesterProvider, Web3

from eth_keyless.confirmation import BroadcastRejected, fund_keyless_account, is_insufficient_funds, wait_transaction_to_complete
from eth_keyless.hotwallet import HotWallet
from eth_keyless.keyless import NetworkTimeout, fetch_deployed_code, translate_network_timeout
from eth_keyless.provider import create_keyless_web3, get_url_domain, read_json_rpc_url


@pytest.fixture
def tester_provider():
    return EthereumTesterProvider()


@pytest.fixture
def web3(tester_provider):
    return Web3(tester_provider)


@pytest.fixture()
def deployer(web3) -> str:
    return web3.eth.accounts[0]


@pytest.fixture()
def receiver(web3) -> str:
    return web3.eth.accounts[1]


def test_wait_unknown_transaction_times_out(web3: Web3):
    """A transaction that never lands gives NetworkTimeout."""
    with pytest.raises(NetworkTimeout):
        wait_transaction_to_complete(
            web3,
            HexBytes("0x" + "01" * 32),
            max_timeout=datetime.timedelta(seconds=0.3),
            poll_delay=datetime.timedelta(seconds=0.1),
        )


def test_wait_transaction(web3: Web3, deployer: str, receiver: str):
    tx_hash = web3.eth.send_transaction({"from": deployer, "to": receiver, "value": 1})
    receipt = wait_transaction_to_complete(web3, tx_hash, max_timeout=datetime.timedelta(seconds=10))
    assert receipt["status"] == 1


def test_translate_request_timeout():
    with pytest.raises(NetworkTimeout) as exc_info:
        with translate_network_timeout("reading something"):
            raise requests.exceptions.ReadTimeout("slow node")
    assert isinstance(exc_info.value.__cause__, requests.exceptions.ReadTimeout)


def test_translate_passes_other_errors():
    with pytest.raises(ValueError):
        with translate_network_timeout("reading something"):
            raise ValueError("not a timeout")


def test_fetch_code_timeout():
    """Hanging node surfaces as NetworkTimeout."""
    web3 = MagicMock()
    web3.eth.get_code.side_effect = requests.exceptions.ConnectTimeout("no route")
    with pytest.raises(NetworkTimeout):
        fetch_deployed_code(web3, "0x4e59b44847b379578588920cA78FbF26c0B4956C")


def test_fund_only_shortfall(web3: Web3, deployer: str):
    account = "0x9097BEc4cC6885D98D090E7980A655284198d41b"
    web3.eth.send_transaction({"from": deployer, "to": account, "value": 400})

    tx_hash = fund_keyless_account(web3, account, 1000, deployer)
    assert tx_hash is not None
    assert web3.eth.get_balance(account) == 1000

    # Already funded, nothing sent
    assert fund_keyless_account(web3, account, 1000, deployer) is None


def test_fund_without_funder(web3: Web3):
    with pytest.raises(BroadcastRejected):
        fund_keyless_account(web3, "0x9097BEc4cC6885D98D090E7980A655284198d41b", 1000, None)


def test_is_insufficient_funds():
    assert is_insufficient_funds("Insufficient funds for gas * price + value")
    assert not is_insufficient_funds("nonce too low")


def test_read_json_rpc_url(monkeypatch):
    monkeypatch.setenv("JSON_RPC_URL", "https://example.com/key")
    assert read_json_rpc_url() == "https://example.com/key"
    monkeypatch.delenv("JSON_RPC_URL")
    with pytest.raises(ValueError):
        read_json_rpc_url()


def test_create_web3_has_timeout():
    web3 = create_keyless_web3("http://localhost:8545", request_timeout=5.0)
    assert web3.provider._request_kwargs["timeout"] == 5.0
    assert get_url_domain("https://mainnet.infura.io/v3/secret") == "mainnet.infura.io"


def test_wait_survives_read_timeout():
    """A slow receipt read is retried until max_timeout."""
    web3 = MagicMock()
    web3.eth.block_number = 5
    web3.eth.get_transaction_receipt.side_effect = [
        requests.exceptions.ReadTimeout("slow node"),
        {"blockNumber": 5, "status": 1},
    ]

    receipt = wait_transaction_to_complete(
        web3,
        HexBytes("0x" + "01" * 32),
        max_timeout=datetime.timedelta(seconds=10),
        poll_delay=datetime.timedelta(seconds=0.01),
    )

    assert receipt["status"] == 1
    assert web3.eth.get_transaction_receipt.call_count == 2


def test_wait_read_timeouts_until_max_timeout():
    """Reads that keep timing out end in NetworkTimeout once the wait is over."""
    web3 = MagicMock()
    web3.eth.get_transaction_receipt.side_effect = requests.exceptions.ReadTimeout("slow node")
    with pytest.raises(NetworkTimeout):
        wait_transaction_to_complete(
            web3,
            HexBytes("0x" + "01" * 32),
            max_timeout=datetime.timedelta(seconds=0.2),
            poll_delay=datetime.timedelta(seconds=0.05),
        )
    assert web3.eth.get_transaction_receipt.call_count > 1


def test_fund_from_empty_hot_wallet(web3: Web3):
    """The node refusing the funding transfer surfaces as BroadcastRejected."""
    empty_wallet = HotWallet(Account.from_key(HexBytes(secrets.token_bytes(32))))
    empty_wallet.sync_nonce(web3)
    account = "0x9097BEc4cC6885D98D090E7980A655284198d41b"

    with pytest.raises(BroadcastRejected) as exc_info:
        fund_keyless_account(web3, account, 10**18, empty_wallet)

    assert exc_info.value.__cause__ is not None
    assert web3.eth.get_balance(account) == 0
