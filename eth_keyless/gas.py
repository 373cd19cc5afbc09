"""Gas price suggestion for the keyless account funding transfer.

The keyless deployment transaction itself has a fixed legacy gas price.
The funding transfer from the operator wallet is a normal transaction
and uses whatever the chain currently wants.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from web3 import Web3


class GasPriceMethod(enum.Enum):
    """What method we did use for setting the gas price."""

    #: Legacy chains
    legacy = "legacy"

    #: Post London hard work
    london = "london"


@dataclass
class GasPriceSuggestion:
    """Gas price details for building a transaction.

    - EIP-1559 London hard fork chains (Ethereumm mainnet)
    - Legacy EVM: BNB Chain
    """

    #: How the gas price was determined
    method: GasPriceMethod

    #: Non London hard fork chains
    legacy_gas_price: Optional[int] = None

    #: London hard fork chains
    base_fee: Optional[int] = None

    #: London hard fork chains
    max_priority_fee_per_gas: Optional[int] = None

    #: London hard fork chains
    max_fee_per_gas: Optional[int] = None

    def __repr__(self):
        return f"<Gas pricing method:{self.method.name} base:{self.base_fee} priority:{self.max_priority_fee_per_gas} max:{self.max_fee_per_gas} legacy:{self.legacy_gas_price}>"


def estimate_gas_price(web3: Web3) -> GasPriceSuggestion:
    """Get a good gas price for a transaction.

    Use London style fees if the latest block has a base fee.
    """
    last_block = web3.eth.get_block("latest")
    base_fee = last_block.get("baseFeePerGas")

    if base_fee is not None:
        max_priority_fee_per_gas = web3.eth.max_priority_fee
        max_fee_per_gas = max_priority_fee_per_gas + (2 * base_fee)
        return GasPriceSuggestion(
            method=GasPriceMethod.london,
            base_fee=base_fee,
            max_priority_fee_per_gas=max_priority_fee_per_gas,
            max_fee_per_gas=max_fee_per_gas,
        )
    else:
        return GasPriceSuggestion(method=GasPriceMethod.legacy, legacy_gas_price=web3.eth.gas_price)


def apply_gas(tx: dict, suggestion: GasPriceSuggestion) -> dict:
    """Apply gas fees to a raw transaction dict.

    :return:
        Mutated dict
    """
    assert isinstance(tx, dict), f"Expected tx to be dict, got {type(tx)}"
    if suggestion.method == GasPriceMethod.london:
        tx["maxFeePerGas"] = suggestion.max_fee_per_gas
        tx["maxPriorityFeePerGas"] = suggestion.max_priority_fee_per_gas
        if "gasPrice" in tx:
            # Cannot have both maxFeePerGas + maxPriorityFeePerGas and gasPrice
            del tx["gasPrice"]
    else:
        tx["gasPrice"] = suggestion.legacy_gas_price
    return tx
