"""Bootstrap the Deployer contract with a keyless deployment.

The Deployer is a CREATE2 factory for proxies. It must sit at the same address
on every chain, so it is deployed with a keyless transaction
and then never again.

Example:

.. code-block:: python

    from eth_keyless.deployer import deploy_deployer
    from eth_keyless.hotwallet import HotWallet

    hot_wallet = HotWallet.from_private_key(os.environ["PRIVATE_KEY"])
    hot_wallet.sync_nonce(web3)

    # Safe to run any number of times
    deploy_deployer(web3, funder=hot_wallet, verbose=True)

"""

import dataclasses
import datetime
import logging
import threading
from typing import Optional

from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3

from eth_keyless.bytecode import get_built_bytecode, get_golden_bytecode, verify_bytecode
from eth_keyless.confirmation import Funder, broadcast_keyless_transaction
from eth_keyless.keyless import (
    DeploymentResult,
    DeploymentState,
    KeylessDeploymentError,
    KeylessDeploymentParams,
    calculate_keyless_deployment,
    create_keyless_transaction,
    translate_network_timeout,
)
from eth_keyless.static import DEPLOYER_ADDRESS, KEYLESS_DEPLOYMENT


logger = logging.getLogger(__name__)


class InvariantViolation(KeylessDeploymentError):
    """Computed deployment disagrees with the statically expected values.

    Either the derivation is broken or the parameters have drifted.
    Nothing has been broadcasted when this is raised.
    """

    def __init__(self, msg: str, expected, computed):
        super().__init__(msg)
        self.expected = expected
        self.computed = computed


#: (chain id, keyless account) -> lock
_deployment_locks: dict[tuple[int, str], threading.Lock] = {}

_deployment_locks_guard = threading.Lock()


def get_deployment_lock(chain_id: int, keyless_account: HexAddress | str) -> threading.Lock:
    """Get the lock serialising bootstrap runs for a keyless account on a chain.

    Two concurrent runs could both see the contract missing, and the
    second broadcast would fail on the nonce.
    """
    key = (chain_id, keyless_account.lower())
    with _deployment_locks_guard:
        lock = _deployment_locks.get(key)
        if lock is None:
            lock = _deployment_locks[key] = threading.Lock()
        return lock


def ensure_deployed(
    web3: Web3,
    params: KeylessDeploymentParams,
    expected_address: HexAddress | str,
    funder: Optional[Funder] = None,
    built_bytecode: Optional[bytes] = None,
    name: str = "contract",
    verbose=False,
    max_timeout=datetime.timedelta(minutes=5),
    poll_delay=datetime.timedelta(seconds=1),
) -> DeploymentResult:
    """Deploy a contract keylessly, unless it is already there.

    - If the contract is already deployed, return immediately
    - Check the gas limit covers the estimated cost, and the computed address is the expected one
    - Compare the deployed bytecode against the build output (warning only)
    - Fund and broadcast

    :param params:
        Bytecode and gas parameters

    :param expected_address:
        The known-good address the contract must land at

    :param funder:
        Pays the gas money of the keyless account

    :param built_bytecode:
        Local build output of the same contract, for the drift check.
        Skipped if not given.

    :param name:
        Contract name for logs

    :param verbose:
        Log progress at ``INFO`` level instead of ``DEBUG``

    :raise CostBoundExceeded:
        Gas limit is below the estimated creation cost. Nothing is sent.

    :raise InvariantViolation:
        Computed address disagrees with the expected one. Nothing is sent.

    :return:
        The deployment outcome. ``transaction_hash`` is set only if we broadcasted.
    """
    log_level = logging.INFO if verbose else logging.DEBUG

    # Local checks first, no network access before them
    tx = create_keyless_transaction(params)
    offline = calculate_keyless_deployment(None, params)

    with translate_network_timeout("reading chain id"):
        chain_id = web3.eth.chain_id

    with get_deployment_lock(chain_id, offline.keyless_account):
        result = calculate_keyless_deployment(web3, params, verbose=verbose)

        if result.already_deployed:
            logger.log(log_level, "%s is ALREADY deployed: %s", name, result.contract_address)
            return result

        if result.contract_address.lower() != expected_address.lower():
            raise InvariantViolation(
                f"{name} would be deployed at {result.contract_address}, expected {expected_address}. Keyless account {result.keyless_account}, {params}",
                expected=expected_address,
                computed=result.contract_address,
            )

        result = dataclasses.replace(result, state=DeploymentState.invariant_checked)

        if built_bytecode is not None:
            verify_bytecode(params.bytecode, built_bytecode, name)

        result = dataclasses.replace(result, state=DeploymentState.broadcasting)
        logger.log(log_level, "Deploying %s to %s from keyless account %s, state %s", name, result.contract_address, result.keyless_account, result.state.name)

        receipt = broadcast_keyless_transaction(
            web3,
            tx,
            funder=funder,
            max_timeout=max_timeout,
            poll_delay=poll_delay,
            verbose=verbose,
        )

        result = dataclasses.replace(
            result,
            state=DeploymentState.deployed,
            transaction_hash=receipt.transaction_hash,
            deployed_contract_address=receipt.contract_address,
            block_number=receipt.block_number,
        )

    logger.log(log_level, "Deployed: %s, tx %s, address %s", name, result.transaction_hash.hex(), result.deployed_contract_address)
    return result


def deployer_bytecode() -> HexBytes:
    """Golden Deployer creation code, checked against the build artifact."""
    bytecode = get_golden_bytecode("Deployer")
    verify_bytecode(bytecode, get_built_bytecode("Deployer.json"), "Deployer")
    return bytecode


def proxy_bytecode() -> HexBytes:
    """Golden Proxy creation code, checked against the build artifact.

    The Deployer embeds exactly this code and spawns proxies from it.
    """
    bytecode = get_golden_bytecode("Proxy")
    verify_bytecode(bytecode, get_built_bytecode("Proxy.json"), "Proxy")
    return bytecode


def get_deployer_params() -> KeylessDeploymentParams:
    """Keyless deployment parameters of the Deployer."""
    return KeylessDeploymentParams(
        bytecode=get_golden_bytecode("Deployer"),
        gas_price=KEYLESS_DEPLOYMENT.gas_price,
        gas_limit=KEYLESS_DEPLOYMENT.gas_limit,
    )


def calculate_deployer_address(web3: Optional[Web3] = None) -> tuple[HexAddress, HexAddress]:
    """Where the Deployer lands.

    :return:
        Tuple (deployer address, keyless account)
    """
    result = calculate_keyless_deployment(web3, get_deployer_params())
    return result.contract_address, result.keyless_account


def calculate_gas_limit(web3: Optional[Web3] = None) -> int:
    """Estimated gas cost of the Deployer deployment."""
    result = calculate_keyless_deployment(web3, get_deployer_params())
    return result.estimated_gas_cost


def deploy_deployer(
    web3: Web3,
    funder: Optional[Funder] = None,
    verbose=False,
    max_timeout=datetime.timedelta(minutes=5),
) -> DeploymentResult:
    """Make sure the Deployer exists on this chain.

    Idempotent: if already deployed, nothing is sent.

    :param funder:
        Pays ``gas_price * gas_limit`` to the keyless account if it is not funded yet
    """
    return ensure_deployed(
        web3,
        get_deployer_params(),
        expected_address=DEPLOYER_ADDRESS,
        funder=funder,
        built_bytecode=get_built_bytecode("Deployer.json"),
        name="Deployer",
        verbose=verbose,
        max_timeout=max_timeout,
    )
