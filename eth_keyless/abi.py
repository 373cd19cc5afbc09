"""Compiler artifacts bundled with the package.

Artifacts live in ``eth_keyless/abi`` as Hardhat style JSON files
with ``abi``, ``bytecode`` and ``deployedBytecode`` keys.
They represent the *build output*. What we actually deploy is the
golden bytecode in :py:mod:`eth_keyless.bytecode`.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Type

from web3 import Web3
from web3.contract import Contract


#: Ethereum 0x0000000000000000000000000000000000000000 address
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@lru_cache(maxsize=32)
def get_abi_by_filename(fname: str) -> dict:
    """Read a bundled compiler artifact.

    Example::

        artifact = get_abi_by_filename("Deployer.json")
        bytecode = artifact["bytecode"]

    Any results are cached.

    :param fname:
        JSON filename in ``eth_keyless/abi``
    """
    here = Path(__file__).resolve().parent
    abi_path = here / "abi" / Path(fname)
    with open(abi_path, "rt", encoding="utf-8") as f:
        return json.load(f)


@lru_cache(maxsize=32)
def get_contract(web3: Web3, fname: str) -> Type[Contract]:
    """Get Contract proxy class for a bundled artifact.

    Web3 connection is part of the cache key.

    Example:

    .. code-block:: python

        Deployer = get_contract(web3, "Deployer.json")
        deployer = Deployer(address=DEPLOYER_ADDRESS)
        print(deployer.functions.calculateAddress(salt).call())
    """
    artifact = get_abi_by_filename(fname)
    return web3.eth.contract(abi=artifact["abi"], bytecode=artifact.get("bytecode"))
