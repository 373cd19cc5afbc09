"""Operator wallet that pays for keyless deployments.

The keyless account cannot sign anything, so somebody has to send it the gas money
for the deployment transaction. :py:class:`HotWallet` is that somebody when the
node does not manage the operator key for us.
"""

import logging
from decimal import Decimal
from typing import NamedTuple, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import Web3

from eth_keyless.provider import get_provider_name
from eth_keyless.tx import decode_signed_transaction, get_tx_broadcast_data

logger = logging.getLogger(__name__)


class SignedFundingTransaction(NamedTuple):
    """A signed transfer from the operator wallet, ready to broadcast."""

    #: Bytes for ``eth_sendRawTransaction``
    raw_transaction: HexBytes

    #: Nonce allocated for this transfer
    nonce: int

    #: Operator wallet address
    address: HexAddress

    def __repr__(self):
        return f"<SignedFundingTransaction from:{self.address} nonce:{self.nonce} payload:{self.raw_transaction.hex()}>"


class HotWallet:
    """Operator wallet funding keyless accounts.

    - Holds a plain text private key in the process memory
      using :py:class:`eth_account.signers.local.LocalAccount`

    - Tracks the nonce locally. Call :py:meth:`sync_nonce` before signing.

    Example:

    .. code-block:: python

        hot_wallet = HotWallet.from_private_key(os.environ["PRIVATE_KEY"])
        hot_wallet.sync_nonce(web3)
        deploy_deployer(web3, funder=hot_wallet, verbose=True)

    .. note ::

        Not thread safe. Funding happens under the deployment lock of one keyless account,
        so do not share a wallet across different keyless accounts in parallel.
    """

    def __init__(self, account: LocalAccount):
        self.account = account
        self.current_nonce: Optional[int] = None

    def __repr__(self):
        return f"<HotWallet {self.account.address} nonce:{self.current_nonce}>"

    @property
    def address(self) -> HexAddress:
        return self.account.address

    def sync_nonce(self, web3: Web3):
        """Read the next nonce from the chain.

        A node lagging behind our own counter is ignored.
        """
        onchain_nonce = web3.eth.get_transaction_count(self.address)
        if self.current_nonce is not None and onchain_nonce < self.current_nonce:
            logger.warning("%s: node %s reports nonce %d, behind our %d, keeping ours", self, get_provider_name(web3.provider), onchain_nonce, self.current_nonce)
            return
        self.current_nonce = onchain_nonce
        logger.info("Synced nonce for %s to %d", self.address, self.current_nonce)

    def sign_transaction_with_new_nonce(self, tx: dict) -> SignedFundingTransaction:
        """Sign a transaction with the next free nonce.

        :param tx:
            Transaction data. The ``nonce`` key is filled in place.
        """
        assert type(tx) == dict
        assert "nonce" not in tx, f"Nonce is allocated by the wallet: {tx}"
        assert self.current_nonce is not None, f"Nonce is not yet synced from the blockchain: {self}"

        tx["nonce"] = self.current_nonce
        raw_transaction = get_tx_broadcast_data(self.account.sign_transaction(tx))
        self.current_nonce += 1

        # Check that we can decode
        decode_signed_transaction(raw_transaction)

        return SignedFundingTransaction(raw_transaction=HexBytes(raw_transaction), nonce=tx["nonce"], address=self.address)

    def get_native_currency_balance(self, web3: Web3) -> Decimal:
        """Balance in ETH, BNB, MATIC or whatever the chain uses."""
        return web3.from_wei(web3.eth.get_balance(self.address), "ether")

    @staticmethod
    def from_private_key(key: str) -> "HotWallet":
        """Create a hot wallet from a 0x prefixed hex private key."""
        assert key.startswith("0x"), "Private key must start with 0x hex prefix"
        return HotWallet(Account.from_key(key))
