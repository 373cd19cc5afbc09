"""eth_keyless package root.

Deterministic keyless deployments: the same contract at the same address on every EVM chain,
without anybody holding a deployment key.

- :py:mod:`eth_keyless.keyless` address precomputation
- :py:mod:`eth_keyless.bytecode` golden bytecode and build drift check
- :py:mod:`eth_keyless.confirmation` broadcasting
- :py:mod:`eth_keyless.deployer` idempotent bootstrap of the Deployer
"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    # https://stackoverflow.com/a/1093331/315168
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"eth-keyless needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()
