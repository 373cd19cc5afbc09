"""Transaction parsing utilities."""

from typing import Union, Optional

from eth_account._utils.legacy_transactions import Transaction
from eth_account.datastructures import SignedTransaction
from hexbytes import HexBytes

from eth_keyless.compat import WEB3_PY_V7

if WEB3_PY_V7:
    from eth_account.typed_transactions import TypedTransaction
else:
    from eth_account._utils.typed_transactions import TypedTransaction


class DecodeFailure(Exception):
    """We could not decode transaction for a reason or another."""


def decode_signed_transaction(raw_bytes: Union[bytes, str, HexBytes]) -> Optional[dict]:
    """Decode already signed transaction.

    Reverse raw transaction bytes back to dictionary form, so you can access
    its ``data`` field and other parameters.

    Supports legacy transactions, including the unprotected keyless deployment
    transaction, and EIP-2718 typed transactions.

    Example:

    .. code-block:: python

        raw_bytes = KeylessTransaction(params).get_raw_transaction()
        d = decode_signed_transaction(raw_bytes)
        assert d["nonce"] == 0
        assert d["to"] == b""
        assert d["v"] == 27

    :raise DecodeFailure:
        If the tx bytes is something we do not know how to handle.

    :return:
        Dictionary like object containing ``data``, ``v``, ``r``, ``s``, ``nonce``, ``value``, ``gas``, ``gasPrice``.
    """

    if not isinstance(raw_bytes, HexBytes):
        raw_bytes = HexBytes(raw_bytes)

    try:
        # First we try EIP-2718 and this will fail we fall back to the legacy tx
        typed_tx = TypedTransaction.from_bytes(raw_bytes)
        if WEB3_PY_V7:
            return typed_tx.transaction.as_dict()
        else:
            return typed_tx.transaction.dictionary
    except ValueError:
        try:
            return Transaction.from_bytes(raw_bytes).as_dict()
        except Exception as e:
            raise DecodeFailure(f"Could not decode transaction: {raw_bytes.hex()}") from e


def get_tx_broadcast_data(signed_tx: SignedTransaction) -> HexBytes:
    """Get raw transaction bytes with compatibility for attribute name changes.

    eth_account changed ``rawTransaction`` to ``raw_transaction`` in newer versions.

    :raises AttributeError:
        If the signed transaction object has neither attribute
    """
    if hasattr(signed_tx, "raw_transaction"):
        return signed_tx.raw_transaction
    elif hasattr(signed_tx, "rawTransaction"):
        return signed_tx.rawTransaction
    else:
        raise AttributeError(f"SignedTransaction object has neither 'raw_transaction' nor 'rawTransaction' attribute. Available attributes: {dir(signed_tx)}")
