"""Deploy the Deployer contract keylessly to a chain.

- Prints the deterministic Deployer address and the keyless account
- Does nothing if the Deployer is already there
- Otherwise funds the keyless account from ``PRIVATE_KEY`` and broadcasts

Usage:

.. code-block:: shell

    export JSON_RPC_URL=...
    export PRIVATE_KEY=...
    python scripts/deploy-deployer.py

Environment variables

- ``JSON_RPC_URL``: chain to deploy to
- ``PRIVATE_KEY``: funder wallet, 0x prefixed. Optional if the keyless account is already funded.
- ``LOG_LEVEL``: default ``info``
- ``REQUEST_TIMEOUT``: JSON-RPC request timeout, seconds
- ``CONFIRMATION_TIMEOUT``: how long to wait for the deployment to be included, seconds
"""

import datetime
import os

from eth_keyless.deployer import calculate_deployer_address, deploy_deployer, get_deployer_params
from eth_keyless.hotwallet import HotWallet
from eth_keyless.provider import create_keyless_web3, get_provider_name, read_json_rpc_url
from eth_keyless.utils import setup_console_logging


def main():
    setup_console_logging(default_log_level="info")

    request_timeout = float(os.environ.get("REQUEST_TIMEOUT", "30"))
    confirmation_timeout = float(os.environ.get("CONFIRMATION_TIMEOUT", "300"))

    web3 = create_keyless_web3(read_json_rpc_url(), request_timeout=request_timeout)
    print(f"Connected to {get_provider_name(web3.provider)}, chain id is {web3.eth.chain_id}, the latest block is {web3.eth.block_number:,}")

    deployer_address, keyless_account = calculate_deployer_address()
    params = get_deployer_params()
    print(f"Deployer address: {deployer_address}")
    print(f"Keyless account: {keyless_account}, needs {web3.from_wei(params.get_funding_amount(), 'ether')} ETH for gas")

    private_key = os.environ.get("PRIVATE_KEY")
    if private_key:
        funder = HotWallet.from_private_key(private_key)
        funder.sync_nonce(web3)
        print(f"Funder {funder.address} has {funder.get_native_currency_balance(web3)} ETH")
    else:
        funder = None

    result = deploy_deployer(
        web3,
        funder=funder,
        verbose=True,
        max_timeout=datetime.timedelta(seconds=confirmation_timeout),
    )

    if result.already_deployed:
        print(f"Deployer already deployed at {result.contract_address}")
    else:
        print(f"Deployer deployed at {result.deployed_contract_address}, tx {result.transaction_hash.hex()}, block {result.block_number:,}")


if __name__ == "__main__":
    main()
