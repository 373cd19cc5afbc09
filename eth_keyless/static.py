"""Process-wide constants for the keyless Deployer bootstrap.

Nothing here is secret. The keyless signature is a public, well-known
value: nobody holds the private key of the account it recovers to.

The expected addresses are derived from :py:data:`KEYLESS_SIGNATURE`, the
golden ``Deployer`` bytecode and the gas parameters below.
Changing any of them moves the Deployer to a different address on every chain.
"""

from typing import NamedTuple

from eth_typing import HexAddress, HexStr


class KeylessSignature(NamedTuple):
    """Fixed ``(v, r, s)`` attached to every keyless deployment transaction."""

    v: int
    r: int
    s: int


#: The public signature used for keyless deployments.
#:
#: ``v=27`` means the transaction is not EIP-155 protected,
#: so the same raw bytes are valid on any chain.
#: Same ``r`` and ``s`` as the widely used deterministic deployment proxy.
KEYLESS_SIGNATURE = KeylessSignature(
    v=27,
    r=0x2222222222222222222222222222222222222222222222222222222222222222,
    s=0x2222222222222222222222222222222222222222222222222222222222222222,
)


class KeylessDeploymentConfig(NamedTuple):
    """Gas parameters baked into the Deployer deployment transaction."""

    #: Legacy gas price in wei
    gas_price: int

    #: Gas limit ceiling
    gas_limit: int


#: Gas parameters of the Deployer deployment transaction.
#:
#: The keyless account needs ``gas_price * gas_limit`` wei (0.06 ETH) before broadcast.
KEYLESS_DEPLOYMENT = KeylessDeploymentConfig(
    gas_price=100 * 10**9,
    gas_limit=600_000,
)

#: Where the Deployer lands on every chain.
DEPLOYER_ADDRESS = HexAddress(HexStr("0xdbB4E2B2a93d3B4c6Edf6203b2E2F95591d2Fd93"))

#: The sender recovered from the Deployer deployment transaction.
DEPLOYER_KEYLESS_ACCOUNT = HexAddress(HexStr("0x9097BEc4cC6885D98D090E7980A655284198d41b"))
