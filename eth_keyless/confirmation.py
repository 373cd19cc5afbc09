"""Keyless transaction broadcasting and confirmation.

- Top up the keyless account with the gas money from an operator wallet
- Broadcast the keyless deployment transaction exactly once
- Wait until the transaction is included, with a timeout

Nothing here retries a broadcast. Reading receipts is safe to repeat,
rebroadcasting is the caller's decision.
"""

import datetime
import logging
import time
from dataclasses import dataclass
from typing import Optional, Union

import requests
from eth_typing import HexAddress
from eth_utils.exceptions import ValidationError
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from eth_keyless.compat import native_datetime_utc_now
from eth_keyless.gas import apply_gas, estimate_gas_price
from eth_keyless.hotwallet import HotWallet
from eth_keyless.keyless import KeylessDeploymentError, KeylessTransaction, NetworkTimeout, translate_network_timeout
from eth_keyless.tx import decode_signed_transaction, get_tx_broadcast_data


logger = logging.getLogger(__name__)


#: What a node raises when it refuses a transaction.
#:
#: JSON-RPC errors come as ``ValueError`` or ``Web3Exception``,
#: Ethereum Tester raises py-evm ``ValidationError`` directly.
BROADCAST_ERRORS = (ValueError, Web3Exception, ValidationError)


#: Who pays the gas money for the keyless account.
#:
#: Either an address unlocked on the node (test chains) or a :py:class:`HotWallet`.
Funder = Union[HotWallet, HexAddress, str]


class BroadcastRejected(KeylessDeploymentError):
    """The node did not accept our transaction, or we know it would not.

    The underlying JSON-RPC error, if any, is available as ``__cause__``.
    """


class ContractDeploymentFailed(KeylessDeploymentError):
    """The deployment transaction was included, but did not leave code behind."""

    def __init__(self, tx_hash: HexBytes, msg: str):
        super().__init__(msg)
        self.tx_hash = tx_hash


@dataclass(slots=True, frozen=True)
class BroadcastReceipt:
    """What we learnt from the receipt of a keyless deployment."""

    transaction_hash: HexBytes

    block_number: int

    block_hash: HexBytes

    #: Contract created by the transaction
    contract_address: Optional[HexAddress]

    gas_used: int


def is_insufficient_funds(eth_rpc_error_message: str) -> bool:
    """Did the node refuse the transaction because the sender cannot pay for the gas."""
    return "insufficient funds" in eth_rpc_error_message.lower()


def wait_transaction_to_complete(
    web3: Web3,
    tx_hash: HexBytes,
    confirmation_block_count: int = 0,
    max_timeout=datetime.timedelta(minutes=5),
    poll_delay=datetime.timedelta(seconds=1),
) -> dict:
    """Poll until a transaction has a receipt.

    A read that times out counts as a missed poll.

    :param confirmation_block_count:
        How many blocks wait for the transaction receipt to settle.
        Set to zero to return as soon as we see the first transaction receipt.

    :raise NetworkTimeout:
        ``max_timeout`` reached without a receipt

    :return:
        Transaction receipt
    """
    assert isinstance(poll_delay, datetime.timedelta)
    assert isinstance(max_timeout, datetime.timedelta)
    assert isinstance(confirmation_block_count, int)

    tx_hash = HexBytes(tx_hash)
    started_at = native_datetime_utc_now()

    # Get loud for the last quarter of the wait
    verbose_timeout = max_timeout * 0.75

    while True:
        if native_datetime_utc_now() > started_at + verbose_timeout:
            tx_log_level = logging.WARNING
        else:
            tx_log_level = logging.DEBUG

        try:
            receipt = web3.eth.get_transaction_receipt(tx_hash)
            if receipt:
                tx_confirmations = web3.eth.block_number - receipt["blockNumber"]
                if tx_confirmations >= confirmation_block_count:
                    logger.log(tx_log_level, "Confirmed tx %s with %d confirmations", tx_hash.hex(), tx_confirmations)
                    return receipt
                logger.log(tx_log_level, "Still waiting more confirmations. Tx %s with %d confirmations, %d needed", tx_hash.hex(), tx_confirmations, confirmation_block_count)
        except TransactionNotFound as e:
            logger.debug("Transaction not found yet: %s", e)
        except requests.exceptions.Timeout as e:
            logger.warning("Timed out reading receipt for %s, polling again: %s", tx_hash.hex(), e)

        if native_datetime_utc_now() > started_at + max_timeout:
            raise NetworkTimeout(f"Transaction {tx_hash.hex()} not confirmed. Started: {started_at}, timed out after {max_timeout} ({max_timeout.total_seconds()}s). Poll delay: {poll_delay.total_seconds()}s.")

        time.sleep(poll_delay.total_seconds())


def fund_keyless_account(
    web3: Web3,
    keyless_account: HexAddress,
    amount: int,
    funder: Optional[Funder],
    max_timeout=datetime.timedelta(minutes=5),
    poll_delay=datetime.timedelta(seconds=1),
) -> Optional[HexBytes]:
    """Make sure the keyless account holds at least ``amount`` wei.

    Only the shortfall is sent.

    :param funder:
        Who pays. If ``None``, the account must already be funded.

    :raise BroadcastRejected:
        The account is short of funds and there is no funder,
        or the funding transfer failed

    :return:
        Funding transaction hash, or ``None`` if the account was already funded
    """
    with translate_network_timeout(f"reading balance of {keyless_account}"):
        balance = web3.eth.get_balance(keyless_account)

    shortfall = amount - balance
    if shortfall <= 0:
        logger.debug("Keyless account %s already holds %d wei, needs %d", keyless_account, balance, amount)
        return None

    if funder is None:
        raise BroadcastRejected(f"Keyless account {keyless_account} has insufficient funds: holds {balance} wei, needs {amount} wei and no funder was given")

    try:
        with translate_network_timeout(f"funding {keyless_account}"):
            if isinstance(funder, HotWallet):
                tx = {
                    "from": funder.address,
                    "to": keyless_account,
                    "value": shortfall,
                    "gas": 21_000,
                    "chainId": web3.eth.chain_id,
                }
                apply_gas(tx, estimate_gas_price(web3))
                signed = funder.sign_transaction_with_new_nonce(tx)
                tx_hash = web3.eth.send_raw_transaction(get_tx_broadcast_data(signed))
            else:
                tx_hash = web3.eth.send_transaction({"from": funder, "to": keyless_account, "value": shortfall})
    except BROADCAST_ERRORS as e:
        raise BroadcastRejected(f"Could not fund keyless account {keyless_account} with {shortfall} wei from {funder}: {e}") from e

    logger.info("Funding keyless account %s with %d wei, tx %s", keyless_account, shortfall, tx_hash.hex())

    receipt = wait_transaction_to_complete(web3, tx_hash, max_timeout=max_timeout, poll_delay=poll_delay)
    if receipt["status"] != 1:
        raise BroadcastRejected(f"Funding transaction {tx_hash.hex()} for {keyless_account} reverted")

    return tx_hash


def broadcast_keyless_transaction(
    web3: Web3,
    tx: KeylessTransaction,
    funder: Optional[Funder] = None,
    confirmation_block_count: int = 0,
    max_timeout=datetime.timedelta(minutes=5),
    poll_delay=datetime.timedelta(seconds=1),
    verbose=False,
) -> BroadcastReceipt:
    """Broadcast a keyless deployment transaction and wait for it to be included.

    The raw transaction is sent exactly once.

    :param tx:
        The keyless deployment

    :param funder:
        Tops up the keyless account to ``gas_price * gas_limit`` first, if needed

    :raise BroadcastRejected:
        The keyless account has already been used, is not funded,
        or the node refused the transaction

    :raise NetworkTimeout:
        The node did not answer or the transaction was not included in time.
        The transaction may still be included later.

    :raise ContractDeploymentFailed:
        The transaction was included, but no contract was created
    """
    log_level = logging.INFO if verbose else logging.DEBUG

    keyless_account = tx.recover_keyless_account()

    with translate_network_timeout(f"reading nonce of {keyless_account}"):
        nonce = web3.eth.get_transaction_count(keyless_account)

    if nonce > 0:
        raise BroadcastRejected(f"Nonce conflict: keyless account {keyless_account} has already sent {nonce} transaction(s), the deployment transaction needs nonce 0")

    fund_keyless_account(
        web3,
        keyless_account,
        tx.params.get_funding_amount(),
        funder,
        max_timeout=max_timeout,
        poll_delay=poll_delay,
    )

    raw_bytes = tx.get_raw_transaction()

    try:
        with translate_network_timeout(f"broadcasting keyless deployment from {keyless_account}"):
            tx_hash = web3.eth.send_raw_transaction(raw_bytes)
    except BROADCAST_ERRORS as e:
        # Anvil and Ethereum Tester refuse the transaction already at the broadcast
        decoded_tx = decode_signed_transaction(raw_bytes)
        if is_insufficient_funds(str(e)):
            logger.error("Keyless account %s is out of gas funds", keyless_account)
        raise BroadcastRejected(f"Could not broadcast keyless deployment {tx.get_transaction_hash().hex()} from {keyless_account}. Nonce: {decoded_tx['nonce']}, gas price: {decoded_tx['gasPrice']}, gas: {decoded_tx['gas']}. JSON-RPC error: {e}") from e

    logger.log(log_level, "Broadcasted keyless deployment %s from %s", HexBytes(tx_hash).hex(), keyless_account)

    receipt = wait_transaction_to_complete(
        web3,
        tx_hash,
        confirmation_block_count=confirmation_block_count,
        max_timeout=max_timeout,
        poll_delay=poll_delay,
    )

    if receipt["status"] != 1:
        raise ContractDeploymentFailed(HexBytes(tx_hash), f"Keyless deployment {HexBytes(tx_hash).hex()} reverted, gas used {receipt['gasUsed']:,}")

    return BroadcastReceipt(
        transaction_hash=HexBytes(receipt["transactionHash"]),
        block_number=receipt["blockNumber"],
        block_hash=HexBytes(receipt["blockHash"]),
        contract_address=receipt.get("contractAddress"),
        gas_used=receipt["gasUsed"],
    )
