"""Proxy spawning through the Deployer."""

import pytest
from eth_utils import keccak
from web3 import EthereumTesterProvider, Web3

from eth_keyless.abi import ZERO_ADDRESS, get_contract
from eth_keyless.deployer import deploy_deployer, proxy_bytecode
from eth_keyless.proxy import SaltAlreadyUsed, calculate_proxy_address, compute_create2_address, deploy_proxy
from eth_keyless.static import DEPLOYER_ADDRESS


@pytest.fixture
def tester_provider():
    return EthereumTesterProvider()


@pytest.fixture
def web3(tester_provider):
    """Set up a local unit testing blockchain."""
    return Web3(tester_provider)


@pytest.fixture()
def deployer(web3) -> str:
    return web3.eth.accounts[0]


@pytest.fixture()
def deployer_contract(web3, deployer):
    """Bootstrapped Deployer."""
    deploy_deployer(web3, funder=deployer)
    Deployer = get_contract(web3, "Deployer.json")
    return Deployer(address=DEPLOYER_ADDRESS)


def test_create2_eip_1014_vectors():
    """Examples from EIP-1014."""
    assert compute_create2_address(ZERO_ADDRESS, bytes(32), b"\x00") == "0x4D1A2e2bB4F88F0250f26Ffff098B0b30B26BF38"
    assert compute_create2_address("0xdeadbeef00000000000000000000000000000000", bytes(32), b"\x00") == "0xB928f69Bb1D91Cd65274e3c79d8986362984fDA3"
    assert compute_create2_address(ZERO_ADDRESS, bytes(32), b"") == "0xE33C0C7F7df4809055C3ebA6c09CFe4BaF1BD9e0"


def test_proxy_address_is_deterministic():
    salt = keccak(text="registry")
    assert calculate_proxy_address(DEPLOYER_ADDRESS, salt) == calculate_proxy_address(DEPLOYER_ADDRESS, salt)
    assert calculate_proxy_address(DEPLOYER_ADDRESS, salt) != calculate_proxy_address(DEPLOYER_ADDRESS, keccak(text="other"))
    assert calculate_proxy_address(DEPLOYER_ADDRESS, salt) == compute_create2_address(DEPLOYER_ADDRESS, salt, proxy_bytecode())


def test_proxy_address_matches_onchain(web3: Web3, deployer_contract):
    """Offline calculation agrees with Deployer.calculateAddress()."""
    salt = keccak(text="registry")
    assert deployer_contract.functions.calculateAddress(salt).call() == calculate_proxy_address(DEPLOYER_ADDRESS, salt)


def test_deploy_proxy(web3: Web3, deployer: str, deployer_contract):
    """Spawn a proxy and check it lands at the precomputed address."""
    salt = keccak(text="registry")
    expected = calculate_proxy_address(DEPLOYER_ADDRESS, salt)
    assert web3.eth.get_code(expected) == b""

    # Any contract will do as the logic
    proxy_address = deploy_proxy(web3, logic=DEPLOYER_ADDRESS, salt=salt, sender=deployer)

    assert proxy_address == expected
    assert len(web3.eth.get_code(proxy_address)) > 0


def test_deploy_proxy_salt_reused(web3: Web3, deployer: str, deployer_contract):
    """Same salt twice."""
    salt = keccak(text="registry")
    deploy_proxy(web3, logic=DEPLOYER_ADDRESS, salt=salt, sender=deployer)
    block_number = web3.eth.block_number

    with pytest.raises(SaltAlreadyUsed):
        deploy_proxy(web3, logic=DEPLOYER_ADDRESS, salt=salt, sender=deployer)

    assert web3.eth.block_number == block_number


def test_deploy_proxy_zero_logic(web3: Web3, deployer: str, deployer_contract):
    with pytest.raises(AssertionError):
        deploy_proxy(web3, logic=ZERO_ADDRESS, salt=keccak(text="registry"), sender=deployer)


def test_deploy_proxy_without_deployer(web3: Web3, deployer: str):
    """Deployer must be bootstrapped first."""
    with pytest.raises(AssertionError):
        deploy_proxy(web3, logic=deployer, salt=keccak(text="registry"), sender=deployer)
