"""Block explorer URLs for log output."""

from enum import Enum
from typing import Optional

from ..exceptions import ConfigurationError

BLOCK_EXPLORERS = {
    11155111: "https://sepolia.etherscan.io/",
    534351: "https://sepolia.scrollscan.com/",
}


class LookupType(str, Enum):
    TX = "tx"
    ADDRESS = "address"
    BLOCK = "block"


def construct_block_explorer_url(
    value: str,
    kind: LookupType,
    chain_id: Optional[int] = None,
    explorer_uri: Optional[str] = None,
) -> str:
    """
    `{explorer}/{kind}/{value}`. An explicit `explorer_uri` wins over the
    chain id lookup.

    Raises:
        ConfigurationError: no explorer known for this chain
    """
    base = explorer_uri or (BLOCK_EXPLORERS.get(chain_id) if chain_id is not None else None)
    if not base:
        raise ConfigurationError(f"Unable to determine block explorer URL for chain {chain_id}")
    return f"{base.rstrip('/')}/{LookupType(kind).value}/{value}"


def _link(value, kind, chain_id, explorer_uri) -> str:
    try:
        return construct_block_explorer_url(value, kind, chain_id, explorer_uri)
    except ConfigurationError:
        return str(value)


def tx_link(tx_hash: str, chain_id: Optional[int] = None, explorer_uri: Optional[str] = None) -> str:
    return _link(tx_hash, LookupType.TX, chain_id, explorer_uri)


def address_link(address: str, chain_id: Optional[int] = None, explorer_uri: Optional[str] = None) -> str:
    return _link(address, LookupType.ADDRESS, chain_id, explorer_uri)


def block_link(block: int, chain_id: Optional[int] = None, explorer_uri: Optional[str] = None) -> str:
    return _link(block, LookupType.BLOCK, chain_id, explorer_uri)
