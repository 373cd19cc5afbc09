"""Spawn proxies through the Deployer.

The Deployer creates proxies with ``CREATE2``, so the address of a proxy depends
only on the Deployer address, the salt and the proxy creation code.
Because the Deployer itself has the same address on every chain,
so does every proxy deployed with the same salt.

Example:

.. code-block:: python

    salt = Web3.keccak(text="my-registry")
    proxy_address = calculate_proxy_address(DEPLOYER_ADDRESS, salt)
    deploy_proxy(web3, logic=registry_implementation.address, salt=salt, sender=hot_wallet)
    assert web3.eth.get_code(proxy_address)
"""

import datetime
import logging

from eth_typing import HexAddress
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes
from web3 import Web3

from eth_keyless.abi import ZERO_ADDRESS, get_contract
from eth_keyless.confirmation import ContractDeploymentFailed, Funder, wait_transaction_to_complete
from eth_keyless.deployer import proxy_bytecode
from eth_keyless.hotwallet import HotWallet
from eth_keyless.keyless import KeylessDeploymentError, is_deployed, translate_network_timeout
from eth_keyless.static import DEPLOYER_ADDRESS
from eth_keyless.tx import get_tx_broadcast_data


logger = logging.getLogger(__name__)


class SaltAlreadyUsed(KeylessDeploymentError):
    """A proxy already exists for this salt."""


def compute_create2_address(sender: HexAddress | str, salt: bytes, init_code: bytes) -> HexAddress:
    """Compute EIP-1014 ``CREATE2`` contract address.

    ``keccak256(0xff ++ sender ++ salt ++ keccak256(init_code))[12:]``
    """
    sender = HexBytes(sender)
    salt = HexBytes(salt)
    assert len(sender) == 20, f"Sender must be 20 bytes, got {len(sender)}"
    assert len(salt) == 32, f"Salt must be 32 bytes, got {len(salt)}"
    preimage = b"\xff" + sender + salt + keccak(init_code)
    return to_checksum_address(keccak(preimage)[12:])


def calculate_proxy_address(deployer_address: HexAddress | str, salt: bytes) -> HexAddress:
    """Offline equivalent of ``Deployer.calculateAddress(salt)``."""
    return compute_create2_address(deployer_address, salt, proxy_bytecode())


def deploy_proxy(
    web3: Web3,
    logic: HexAddress | str,
    salt: bytes,
    sender: Funder,
    deployer_address: HexAddress | str = DEPLOYER_ADDRESS,
    max_timeout=datetime.timedelta(minutes=5),
    poll_delay=datetime.timedelta(seconds=1),
) -> HexAddress:
    """Deploy a proxy pointing to ``logic`` through the Deployer.

    :param logic:
        Implementation contract the proxy delegates to

    :param salt:
        32 bytes

    :param sender:
        Pays for the transaction. Unlocked node address or :py:class:`HotWallet`.

    :raise SaltAlreadyUsed:
        A proxy already exists at the address for this salt

    :return:
        Proxy address
    """
    assert logic != ZERO_ADDRESS, "Proxy logic cannot be the zero address"
    assert is_deployed(web3, deployer_address), f"No Deployer at {deployer_address}"

    proxy_address = calculate_proxy_address(deployer_address, salt)
    if is_deployed(web3, proxy_address):
        raise SaltAlreadyUsed(f"Salt {HexBytes(salt).hex()} is already used, proxy exists at {proxy_address}")

    Deployer = get_contract(web3, "Deployer.json")
    deployer = Deployer(address=to_checksum_address(deployer_address))
    bound_func = deployer.functions.deploy(to_checksum_address(logic), HexBytes(salt))

    with translate_network_timeout(f"deploying proxy {proxy_address}"):
        if isinstance(sender, HotWallet):
            tx = bound_func.build_transaction({"from": sender.address, "chainId": web3.eth.chain_id})
            signed = sender.sign_transaction_with_new_nonce(tx)
            tx_hash = web3.eth.send_raw_transaction(get_tx_broadcast_data(signed))
        else:
            tx_hash = bound_func.transact({"from": sender})

    receipt = wait_transaction_to_complete(web3, tx_hash, max_timeout=max_timeout, poll_delay=poll_delay)
    if receipt["status"] != 1:
        raise ContractDeploymentFailed(HexBytes(tx_hash), f"Proxy deployment with salt {HexBytes(salt).hex()} failed, tx {HexBytes(tx_hash).hex()}")

    logger.info("Deployed proxy %s for logic %s, tx %s", proxy_address, logic, HexBytes(tx_hash).hex())
    return proxy_address
