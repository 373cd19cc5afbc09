"""JSON-RPC connection setup from environment variables.

All network calls made during a bootstrap run must have a bounded wait.
:py:func:`create_keyless_web3` sets an HTTP request timeout on the provider,
and timeouts surface as :py:class:`eth_keyless.keyless.NetworkTimeout`.
"""

import os
from urllib.parse import urlparse

from web3 import HTTPProvider, Web3
from web3.providers import BaseProvider


#: Seconds to wait for a single JSON-RPC request
DEFAULT_REQUEST_TIMEOUT = 30.0


def read_json_rpc_url(env_var: str = "JSON_RPC_URL") -> str:
    """Read JSON-RPC URL from an environment variable.

    :raises ValueError: If the environment variable is not set.
    """
    json_rpc_url = os.environ.get(env_var)
    if not json_rpc_url:
        raise ValueError(f"Environment variable {env_var} is not set")
    return json_rpc_url


def create_keyless_web3(json_rpc_url: str, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> Web3:
    """Create a Web3 connection where every request has a timeout.

    :param json_rpc_url:
        HTTP(S) JSON-RPC endpoint

    :param request_timeout:
        Seconds before a request raises :py:class:`requests.exceptions.Timeout`
    """
    assert json_rpc_url.startswith("http"), f"Only HTTP(S) JSON-RPC supported, got {get_url_domain(json_rpc_url)}"
    provider = HTTPProvider(json_rpc_url, request_kwargs={"timeout": request_timeout})
    return Web3(provider)


def get_url_domain(url: str) -> str:
    """Redact URL so that only domain is displayed.

    Some services e.g. infura use path as an API key.
    """
    parsed = urlparse(url)
    if parsed.port in (80, 443, None):
        return parsed.hostname
    else:
        return f"{parsed.hostname}:{parsed.port}"


def get_provider_name(provider: BaseProvider) -> str:
    """Get loggable name of the JSON-RPC provider.

    Strips out API keys from the URL.
    """
    if hasattr(provider, "endpoint_uri"):
        return get_url_domain(provider.endpoint_uri)
    return str(provider)
