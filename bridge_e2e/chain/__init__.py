"""
Chain access: RPC connector, contract ABIs, cross-domain message
resolution, the test token and explorer links.
"""

from .connector import ChainConnector, normalize_receipt
from .explorer import address_link, block_link, construct_block_explorer_url, tx_link
from .messages import CrossDomainMessage, pending_queue_index, resolve_cross_domain_message
from .token import CompiledToken, compile_token

__all__ = [
    "ChainConnector",
    "normalize_receipt",
    "CrossDomainMessage",
    "resolve_cross_domain_message",
    "pending_queue_index",
    "construct_block_explorer_url",
    "tx_link",
    "address_link",
    "block_link",
    "CompiledToken",
    "compile_token",
]
