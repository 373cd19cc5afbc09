"""Golden bytecode fixtures and build drift detection.

The bytecode we deploy keylessly is embedded in this module, keyed by its keccak256 hash.
The keyless deployment address depends on every byte, so we never deploy whatever
the local compiler happens to output. Instead we compare the embedded blob against the
build artifact and warn on any disparity.

A disparity is advisory. Different solc builds often differ only in the
trailing metadata hash, which does not change the contract behavior.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

from eth_utils import keccak
from hexbytes import HexBytes

from eth_keyless.abi import get_abi_by_filename


logger = logging.getLogger(__name__)


#: Audited contract creation code, keyed by keccak256 of the code.
#:
#: Compiled with solc 0.5.15.
GOLDEN_BYTECODE: dict[str, str] = {
    # Deployer
    "0x1183dcf4a4925ef769b7ceb74efbdae4997c87b077d7cb2978198b20848fb1e2": "0x608060405234801561001057600080fd5b50610501806100206000396000f3fe608060405234801561001057600080fd5b50600436106100365760003560e01c806332c02a141461003b578063c090587f14610083575b600080fd5b6100676004803603604081101561005157600080fd5b506001600160a01b0381351690602001356100a0565b604080516001600160a01b039092168252519081900360200190f35b6100676004803603602081101561009957600080fd5b5035610198565b60006100b36100ae836101a9565b610221565b156100fe576040805162461bcd60e51b815260206004820152601660248201527511195c1b1bde595c8e881cd85b1d081a5cc81d5cd95960521b604482015290519081900360640190fd5b606061010861025d565b9050828151602083016000f59150813b61012157600080fd5b816001600160a01b031663bd5b2202856040518263ffffffff1660e01b815260040180826001600160a01b03166001600160a01b03168152602001915050600060405180830381600087803b15801561017957600080fd5b505af115801561018d573d6000803e3d6000fd5b505050505092915050565b60006101a3826101a9565b92915050565b600060ff30836101b761025d565b80519060200120604051602001808560ff1660ff1660f81b8152600101846001600160a01b03166001600160a01b031660601b81526014018381526020018281526020019450505050506040516020818303038152906040528051906020012060001c9050919050565b6000813f7fc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a47081811480159061025557508115155b949350505050565b60606040518060200161026f90610287565b601f1982820381018352601f90910116604052905090565b610238806102958339019056fe608060405234801561001057600080fd5b50610218806100206000396000f3fe6080604052600436106100295760003560e01c80630fd5b6ae14610033578063bd5b220214610064575b610031610097565b005b34801561003f57600080fd5b506100486100b1565b604080516001600160a01b039092168252519081900360200190f35b34801561007057600080fd5b506100316004803603602081101561008757600080fd5b50356001600160a01b03166100c0565b61009f6100af565b6100af6100aa61019a565b6101bf565b565b60006100bb61019a565b905090565b60006100ca61019a565b6001600160a01b031614610125576040805162461bcd60e51b815260206004820152601a60248201527f50726f78793a20616c726561647920696e697469616c697a6564000000000000604482015290519081900360640190fd5b6001600160a01b038116610176576040805162461bcd60e51b815260206004820152601360248201527250726f78793a207a65726f206164647265737360681b604482015290519081900360640190fd5b7f7050c9e0f4ca769c69bd3a8ef740bc37934f8e2c036e5a723fd8ee048ed3f8c355565b7f7050c9e0f4ca769c69bd3a8ef740bc37934f8e2c036e5a723fd8ee048ed3f8c35490565b3660008037600080366000845af43d6000803e8080156101de573d6000f35b3d6000fdfea265627a7a72315820c280737031be2c6d3b410c09f08919c2cede3c62685b4b8ae0ae9fec75a0c15f64736f6c634300050f0032a265627a7a723158204ba46b4927debb1c1a935a0355c06a56129992e651124407c95f35579a6cb21764736f6c634300050f0032",
    # Proxy
    "0x14e00ac212ad74419d82c08cf072f2d28b443e000930e1c5f7171eed55f3e9ca": "0x608060405234801561001057600080fd5b50610218806100206000396000f3fe6080604052600436106100295760003560e01c80630fd5b6ae14610033578063bd5b220214610064575b610031610097565b005b34801561003f57600080fd5b506100486100b1565b604080516001600160a01b039092168252519081900360200190f35b34801561007057600080fd5b506100316004803603602081101561008757600080fd5b50356001600160a01b03166100c0565b61009f6100af565b6100af6100aa61019a565b6101bf565b565b60006100bb61019a565b905090565b60006100ca61019a565b6001600160a01b031614610125576040805162461bcd60e51b815260206004820152601a60248201527f50726f78793a20616c726561647920696e697469616c697a6564000000000000604482015290519081900360640190fd5b6001600160a01b038116610176576040805162461bcd60e51b815260206004820152601360248201527250726f78793a207a65726f206164647265737360681b604482015290519081900360640190fd5b7f7050c9e0f4ca769c69bd3a8ef740bc37934f8e2c036e5a723fd8ee048ed3f8c355565b7f7050c9e0f4ca769c69bd3a8ef740bc37934f8e2c036e5a723fd8ee048ed3f8c35490565b3660008037600080366000845af43d6000803e8080156101de573d6000f35b3d6000fdfea265627a7a72315820c280737031be2c6d3b410c09f08919c2cede3c62685b4b8ae0ae9fec75a0c15f64736f6c634300050f0032",
}

#: Contract name -> golden bytecode hash
GOLDEN_BYTECODE_HASHES: dict[str, str] = {
    "Deployer": "0x1183dcf4a4925ef769b7ceb74efbdae4997c87b077d7cb2978198b20848fb1e2",
    "Proxy": "0x14e00ac212ad74419d82c08cf072f2d28b443e000930e1c5f7171eed55f3e9ca",
}


class BytecodeMismatchWarning(UserWarning):
    """Build output differs from the embedded golden bytecode."""


@dataclass(slots=True, frozen=True)
class BytecodeDisparity:
    """Details of a golden vs. build mismatch."""

    name: str

    expected_hash: HexBytes

    actual_hash: HexBytes

    expected_length: int

    actual_length: int

    #: Offset of the first differing byte.
    #:
    #: If one is a prefix of the other, the length of the shorter one.
    first_difference: int

    def __repr__(self):
        return f"<BytecodeDisparity {self.name} expected:{self.expected_hash.hex()} ({self.expected_length} bytes) actual:{self.actual_hash.hex()} ({self.actual_length} bytes) first difference at:{self.first_difference}>"


def get_golden_bytecode(name: str) -> HexBytes:
    """Get the embedded bytecode of a contract.

    The blob is checked against its content hash on every load.

    :param name:
        Contract name, e.g. Deployer
    """
    code_hash = GOLDEN_BYTECODE_HASHES.get(name)
    assert code_hash, f"No golden bytecode for {name}"
    bytecode = HexBytes(GOLDEN_BYTECODE[code_hash])
    assert HexBytes(keccak(bytecode)) == HexBytes(code_hash), f"Golden bytecode for {name} is corrupted"
    return bytecode


def get_built_bytecode(fname: str) -> HexBytes:
    """Get the creation code from a compiler artifact in ``eth_keyless/abi``."""
    artifact = get_abi_by_filename(fname)
    bytecode = artifact["bytecode"]
    if type(bytecode) == dict:
        # Forge style artifact
        bytecode = bytecode["object"]
    return HexBytes(bytecode)


def verify_bytecode(expected: bytes, actual: bytes, name: str = "contract") -> Optional[BytecodeDisparity]:
    """Compare golden bytecode against build output.

    On mismatch, log a warning and emit :py:class:`BytecodeMismatchWarning`.
    Never raises on mismatch.

    :return:
        ``None`` if the bytecode is identical
    """
    expected = HexBytes(expected)
    actual = HexBytes(actual)

    if expected == actual:
        return None

    first_difference = next(
        (i for i, (a, b) in enumerate(zip(expected, actual)) if a != b),
        min(len(expected), len(actual)),
    )

    disparity = BytecodeDisparity(
        name=name,
        expected_hash=HexBytes(keccak(expected)),
        actual_hash=HexBytes(keccak(actual)),
        expected_length=len(expected),
        actual_length=len(actual),
        first_difference=first_difference,
    )

    logger.warning("%s bytecode disparity: %s", name, disparity)
    warnings.warn(f"{name} bytecode disparity: {disparity}", BytecodeMismatchWarning, stacklevel=2)
    return disparity
