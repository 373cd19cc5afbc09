"""Golden bytecode fixtures and build drift warnings."""

import logging
import warnings

import pytest
from eth_utils import keccak
from hexbytes import HexBytes

from eth_keyless.bytecode import (
    GOLDEN_BYTECODE,
    GOLDEN_BYTECODE_HASHES,
    BytecodeMismatchWarning,
    get_built_bytecode,
    get_golden_bytecode,
    verify_bytecode,
)
from eth_keyless.deployer import deployer_bytecode, proxy_bytecode


def test_golden_fixtures_are_content_addressed():
    """Every golden blob is stored under its own hash."""
    for code_hash, bytecode in GOLDEN_BYTECODE.items():
        assert HexBytes(keccak(HexBytes(bytecode))) == HexBytes(code_hash)
    assert set(GOLDEN_BYTECODE_HASHES.values()) == set(GOLDEN_BYTECODE.keys())


def test_deployer_embeds_proxy():
    """Deployer spawns proxies from the same creation code we have as the Proxy fixture."""
    assert get_golden_bytecode("Proxy") in get_golden_bytecode("Deployer")


def test_built_artifacts_match_golden():
    """Shipped build artifacts do not trigger a disparity warning."""
    with warnings.catch_warnings():
        warnings.simplefilter("error", BytecodeMismatchWarning)
        assert deployer_bytecode() == get_built_bytecode("Deployer.json")
        assert proxy_bytecode() == get_built_bytecode("Proxy.json")


def test_verify_identical():
    code = get_golden_bytecode("Proxy")
    assert verify_bytecode(code, HexBytes(code)) is None


def test_verify_metadata_hash_drift(caplog):
    """Different compiler metadata hash is reported, not raised."""
    expected = get_golden_bytecode("Proxy")
    actual = bytearray(expected)
    # Swarm hash of the solc metadata: the last 43 - 11 bytes
    actual[-43:-11] = bytes(32)

    with caplog.at_level(logging.WARNING), pytest.warns(BytecodeMismatchWarning):
        disparity = verify_bytecode(expected, bytes(actual), "Proxy")

    assert disparity is not None
    assert disparity.name == "Proxy"
    assert disparity.first_difference == len(expected) - 43
    assert disparity.expected_length == disparity.actual_length == len(expected)
    assert disparity.expected_hash == HexBytes(keccak(expected))
    assert "Proxy bytecode disparity" in caplog.text


def test_verify_truncated():
    """A prefix differs at the end of the shorter one."""
    expected = get_golden_bytecode("Proxy")
    with pytest.warns(BytecodeMismatchWarning):
        disparity = verify_bytecode(expected, expected[:100])
    assert disparity.first_difference == 100
    assert disparity.actual_length == 100


def test_unknown_golden():
    with pytest.raises(AssertionError):
        get_golden_bytecode("Foobar")
