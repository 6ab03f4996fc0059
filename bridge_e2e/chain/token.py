"""
Test token

The e2e run deploys a fresh ERC20 on each chain. Its Solidity source lives
here and is compiled with py-solc-x the first time a deployment needs it;
the pinned compiler is installed on demand.

The contract implements what the bridge gateways and the pipeline call
(`balanceOf`, `approve`, `allowance`, `transfer`, `transferFrom`) plus the
ERC20 metadata. The constructor mints the whole supply to the deployer.
"""

import functools
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from solcx import compile_source, get_installed_solc_versions, install_solc
from solcx.exceptions import SolcError

from ..constants import TOKEN_DECIMALS, TOKEN_INITIAL_SUPPLY, TOKEN_NAME, TOKEN_SYMBOL
from ..exceptions import DeploymentError
from ..logger import get_logger

logger = get_logger(__name__)

SOLC_VERSION = "0.8.24"
# No PUSH0: not every rollup accepts Shanghai opcodes
EVM_VERSION = "paris"

TOKEN_CONTRACT = "BridgeE2EToken"

TOKEN_SOURCE = """
// SPDX-License-Identifier: MIT
pragma solidity 0.8.24;

contract BridgeE2EToken {
    string public name;
    string public symbol;
    uint8 public decimals;
    uint256 public totalSupply;

    mapping(address => uint256) public balanceOf;
    mapping(address => mapping(address => uint256)) public allowance;

    event Transfer(address indexed from, address indexed to, uint256 value);
    event Approval(address indexed owner, address indexed spender, uint256 value);

    constructor(string memory name_, string memory symbol_, uint8 decimals_, uint256 supply) {
        name = name_;
        symbol = symbol_;
        decimals = decimals_;
        totalSupply = supply;
        balanceOf[msg.sender] = supply;
        emit Transfer(address(0), msg.sender, supply);
    }

    function approve(address spender, uint256 amount) external returns (bool) {
        allowance[msg.sender][spender] = amount;
        emit Approval(msg.sender, spender, amount);
        return true;
    }

    function transfer(address to, uint256 amount) external returns (bool) {
        _move(msg.sender, to, amount);
        return true;
    }

    function transferFrom(address from, address to, uint256 amount) external returns (bool) {
        uint256 allowed = allowance[from][msg.sender];
        require(allowed >= amount, "insufficient allowance");
        allowance[from][msg.sender] = allowed - amount;
        _move(from, to, amount);
        return true;
    }

    function _move(address from, address to, uint256 amount) internal {
        require(balanceOf[from] >= amount, "insufficient balance");
        balanceOf[from] -= amount;
        balanceOf[to] += amount;
        emit Transfer(from, to, amount);
    }
}
"""

# name, symbol, decimals, initial supply
TOKEN_CONSTRUCTOR_ARGS: Tuple[str, str, int, int] = (
    TOKEN_NAME,
    TOKEN_SYMBOL,
    TOKEN_DECIMALS,
    TOKEN_INITIAL_SUPPLY,
)


@dataclass(frozen=True)
class CompiledToken:
    abi: List[Dict[str, Any]]
    bytecode: str   # 0x-prefixed creation code, without constructor arguments


def ensure_solc(version: str = SOLC_VERSION) -> None:
    """Install solc `version` unless it is already available."""
    installed = [str(v) for v in get_installed_solc_versions()]
    if version not in installed:
        logger.info("Installing solc %s...", version)
        install_solc(version)


@functools.lru_cache(maxsize=None)
def compile_token(version: str = SOLC_VERSION) -> CompiledToken:
    """
    Compile the test token.

    Raises:
        DeploymentError: solc rejected the source
    """
    ensure_solc(version)
    try:
        compiled = compile_source(
            TOKEN_SOURCE,
            output_values=["abi", "bin"],
            solc_version=version,
            evm_version=EVM_VERSION,
        )
    except SolcError as e:
        raise DeploymentError(f"Compiling {TOKEN_CONTRACT} failed: {e}") from e
    interface = compiled[f"<stdin>:{TOKEN_CONTRACT}"]
    logger.debug("Compiled %s with solc %s (%d bytes)", TOKEN_CONTRACT, version, len(interface["bin"]) // 2)
    return CompiledToken(abi=interface["abi"], bytecode="0x" + interface["bin"])
