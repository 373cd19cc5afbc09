"""Keyless deployment address precomputation.

A keyless deployment is a contract creation transaction that nobody signed.
Instead of a private key, we attach a fixed public signature
(see :py:data:`eth_keyless.static.KEYLESS_SIGNATURE`) to the transaction
and let ECDSA recovery tell us who the sender is. Because

- the signature is public,
- the transaction has nonce 0 and no chain id (pre EIP-155),

anyone can rebuild the byte-identical transaction, recover the same
sender and arrive to the same contract address on any EVM chain.
Nobody can ever send another transaction from the keyless account,
so the address cannot be squatted.

Example:

.. code-block:: python

    from eth_keyless.keyless import KeylessDeploymentParams, calculate_keyless_deployment

    params = KeylessDeploymentParams(bytecode=HexBytes(bytecode), gas_price=100 * 10**9, gas_limit=600_000)
    result = calculate_keyless_deployment(web3, params)
    print(f"Contract will be at {result.contract_address}, fund {result.keyless_account} to deploy it")

See also

- `Nick's method <https://weka.medium.com/how-to-send-ether-to-11-440-people-187e332566b7>`__
- `EIP-1820 deployment method <https://eips.ethereum.org/EIPS/eip-1820#deployment-method>`__
"""

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

import rlp
import requests
from eth_account import Account
from eth_account._utils.legacy_transactions import Transaction, UnsignedTransaction
from eth_typing import HexAddress
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TimeExhausted

from eth_keyless.static import KEYLESS_SIGNATURE, KeylessSignature


logger = logging.getLogger(__name__)


#: Base cost of any transaction
TX_GAS = 21_000

#: Extra cost of a contract creation transaction
CREATE_GAS = 32_000

#: Calldata cost per zero byte
TX_DATA_ZERO_GAS = 4

#: Calldata cost per non-zero byte
TX_DATA_NON_ZERO_GAS = 16

#: EIP-3860 cost per 32 byte word of init code
INIT_CODE_WORD_GAS = 2

#: Cost per byte of the deployed runtime code
CODE_DEPOSIT_GAS = 200


class KeylessDeploymentError(Exception):
    """Base class for keyless deployment failures."""


class EmptyBytecode(KeylessDeploymentError):
    """There is nothing to deploy."""


class CostBoundExceeded(KeylessDeploymentError):
    """The gas limit does not cover the estimated contract creation cost."""

    def __init__(self, msg: str, estimated_gas_cost: int, gas_limit: int):
        super().__init__(msg)
        self.estimated_gas_cost = estimated_gas_cost
        self.gas_limit = gas_limit


class NetworkTimeout(KeylessDeploymentError):
    """JSON-RPC node did not answer, or the transaction was not confirmed, in time."""


@contextmanager
def translate_network_timeout(what: str):
    """Turn JSON-RPC transport timeouts into :py:class:`NetworkTimeout`.

    Example:

    .. code-block:: python

        with translate_network_timeout("reading balance"):
            balance = web3.eth.get_balance(address)
    """
    try:
        yield
    except (requests.exceptions.Timeout, TimeExhausted) as e:
        raise NetworkTimeout(f"Timed out {what}") from e


class DeploymentState(enum.Enum):
    """Where a bootstrap run is.

    ``already_deployed``, ``deployed`` and ``failed`` are terminal.

    A returned :py:class:`DeploymentResult` is ``computed``, ``already_deployed`` or ``deployed``.
    ``invariant_checked`` and ``broadcasting`` are set during a bootstrap run.
    ``not_started`` is where every run begins and never appears in a result.
    A run never returns ``failed``. It raises a :py:class:`KeylessDeploymentError` subclass instead.
    """

    not_started = "not_started"
    computed = "computed"
    already_deployed = "already_deployed"
    invariant_checked = "invariant_checked"
    broadcasting = "broadcasting"
    deployed = "deployed"
    failed = "failed"


@dataclass(slots=True, frozen=True)
class KeylessDeploymentParams:
    """What we deploy and with what gas.

    Any change in these parameters changes the keyless account
    and thus the contract address.
    """

    #: Contract creation code (init code), as output by the compiler
    bytecode: HexBytes

    #: Legacy gas price in wei.
    #:
    #: Zero is accepted here, but nodes are unlikely to include such a transaction.
    gas_price: int

    #: Gas limit of the deployment transaction
    gas_limit: int

    def __post_init__(self):
        assert isinstance(self.bytecode, bytes), f"bytecode must be bytes, got {type(self.bytecode)}"
        assert type(self.gas_price) == int and self.gas_price >= 0, f"Bad gas price {self.gas_price}"
        assert type(self.gas_limit) == int and self.gas_limit >= 0, f"Bad gas limit {self.gas_limit}"

    def __repr__(self):
        return f"<KeylessDeploymentParams bytecode:{len(self.bytecode)} bytes gas price:{self.gas_price:,} gas limit:{self.gas_limit:,}>"

    def get_funding_amount(self) -> int:
        """How much wei the keyless account must hold before broadcast."""
        return self.gas_price * self.gas_limit


@dataclass(slots=True, frozen=True)
class KeylessTransaction:
    """A canonical contract creation transaction carrying the public keyless signature.

    - Nonce is always 0
    - No ``to``, zero value
    - No chain id, so the raw bytes are valid on every chain

    Building this twice from the same parameters gives byte-identical output.
    """

    params: KeylessDeploymentParams

    signature: KeylessSignature = KEYLESS_SIGNATURE

    def get_unsigned_transaction(self) -> UnsignedTransaction:
        return UnsignedTransaction(
            nonce=0,
            gasPrice=self.params.gas_price,
            gas=self.params.gas_limit,
            to=b"",
            value=0,
            data=bytes(self.params.bytecode),
        )

    def get_signing_hash(self) -> HexBytes:
        """The hash the fixed signature is claimed to sign."""
        return HexBytes(keccak(rlp.encode(self.get_unsigned_transaction())))

    def get_raw_transaction(self) -> HexBytes:
        """RLP encoded signed transaction, ready for ``eth_sendRawTransaction``."""
        signed = Transaction(
            nonce=0,
            gasPrice=self.params.gas_price,
            gas=self.params.gas_limit,
            to=b"",
            value=0,
            data=bytes(self.params.bytecode),
            v=self.signature.v,
            r=self.signature.r,
            s=self.signature.s,
        )
        return HexBytes(rlp.encode(signed))

    def get_transaction_hash(self) -> HexBytes:
        """The transaction hash the network will report for this deployment."""
        return HexBytes(keccak(self.get_raw_transaction()))

    def recover_keyless_account(self) -> HexAddress:
        """Recover the sender address from the public signature.

        Nobody knows the private key of this address.
        """
        return Account.recover_transaction(self.get_raw_transaction())


@dataclass(slots=True, frozen=True)
class DeploymentResult:
    """Outcome of a keyless deployment calculation or bootstrap run.

    Never mutated. The orchestrator creates a new copy with the broadcast details filled in.
    """

    #: Where the contract lands on every chain
    contract_address: HexAddress

    #: The sender recovered from the keyless signature
    keyless_account: HexAddress

    #: The target chain already has code at :py:attr:`contract_address`
    already_deployed: bool

    #: See :py:func:`estimate_deployment_gas`
    estimated_gas_cost: int

    #: Last state reached
    state: DeploymentState = DeploymentState.computed

    #: Set only if we broadcasted the deployment in this run
    transaction_hash: Optional[HexBytes] = None

    #: Contract address from the on-chain receipt, set only if we broadcasted
    deployed_contract_address: Optional[HexAddress] = None

    #: Block where the deployment was included, set only if we broadcasted
    block_number: Optional[int] = None

    def is_broadcasted(self) -> bool:
        return self.transaction_hash is not None


def create_keyless_transaction(params: KeylessDeploymentParams) -> KeylessTransaction:
    """Build the canonical keyless deployment transaction.

    :raise EmptyBytecode:
        If there is no init code
    """
    if len(params.bytecode) == 0:
        raise EmptyBytecode(f"Cannot deploy empty bytecode: {params}")
    return KeylessTransaction(params)


def compute_contract_address(sender: HexAddress | str, nonce: int = 0) -> HexAddress:
    """Calculate the address of a contract created by a ``CREATE`` transaction.

    The address is the last 20 bytes of ``keccak256(rlp([sender, nonce]))``.
    Chain id or block do not play any role.

    :param sender:
        Deployer address

    :param nonce:
        Deployer nonce when the contract is created
    """
    assert type(nonce) == int and nonce >= 0, f"Bad nonce {nonce}"
    preimage = rlp.encode([HexBytes(sender), nonce])
    return to_checksum_address(keccak(preimage)[12:])


def estimate_deployment_gas(bytecode: bytes) -> int:
    """Estimate the gas cost of a contract creation transaction from the init code alone.

    - Intrinsic transaction and creation cost
    - Calldata cost
    - EIP-3860 init code word cost
    - Code deposit cost, assuming the runtime code is no longer than the init code

    Constructor execution itself is not metered. For compiler output the code deposit
    overestimate more than covers it.
    """
    zero_bytes = bytecode.count(0)
    non_zero_bytes = len(bytecode) - zero_bytes
    words = (len(bytecode) + 31) // 32
    return (
        TX_GAS
        + CREATE_GAS
        + zero_bytes * TX_DATA_ZERO_GAS
        + non_zero_bytes * TX_DATA_NON_ZERO_GAS
        + words * INIT_CODE_WORD_GAS
        + len(bytecode) * CODE_DEPOSIT_GAS
    )


def fetch_deployed_code(web3: Web3, address: HexAddress | str) -> HexBytes:
    """Read the runtime code at an address.

    :raise NetworkTimeout:
        The node did not answer in time
    """
    with translate_network_timeout(f"reading code at {address}"):
        return HexBytes(web3.eth.get_code(to_checksum_address(address)))


def is_deployed(web3: Web3, address: HexAddress | str) -> bool:
    """Does the chain have any code at this address."""
    return len(fetch_deployed_code(web3, address)) > 0


def calculate_keyless_deployment(
    web3: Optional[Web3],
    params: KeylessDeploymentParams,
    verbose=False,
) -> DeploymentResult:
    """Work out where a keyless deployment lands, and whether it is already there.

    Local validation happens before any network access.

    :param web3:
        Connection to the target chain.

        If ``None``, do a pure offline calculation and report the contract as not deployed.

    :param params:
        Bytecode and gas parameters

    :param verbose:
        Log at ``INFO`` level instead of ``DEBUG``

    :raise EmptyBytecode:
        No bytecode given

    :raise CostBoundExceeded:
        ``gas_limit`` is below :py:func:`estimate_deployment_gas`

    :raise NetworkTimeout:
        Reading the chain state timed out
    """
    log_level = logging.INFO if verbose else logging.DEBUG

    tx = create_keyless_transaction(params)

    estimated_gas_cost = estimate_deployment_gas(params.bytecode)
    if estimated_gas_cost > params.gas_limit:
        raise CostBoundExceeded(
            f"Gas limit {params.gas_limit:,} does not cover the estimated deployment cost {estimated_gas_cost:,}",
            estimated_gas_cost=estimated_gas_cost,
            gas_limit=params.gas_limit,
        )

    keyless_account = tx.recover_keyless_account()
    contract_address = compute_contract_address(keyless_account, 0)

    logger.log(log_level, "Keyless account %s deploys to %s, estimated gas %d", keyless_account, contract_address, estimated_gas_cost)

    if web3 is not None:
        already_deployed = is_deployed(web3, contract_address)
    else:
        already_deployed = False

    return DeploymentResult(
        contract_address=contract_address,
        keyless_account=keyless_account,
        already_deployed=already_deployed,
        estimated_gas_cost=estimated_gas_cost,
        state=DeploymentState.already_deployed if already_deployed else DeploymentState.computed,
    )
