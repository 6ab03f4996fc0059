"""
Cross-Domain Message Resolver

Given an L1 transaction that enqueued an L1 -> L2 message, find the queue
position from the `QueueTransaction` event and ask the message queue which
L2 transaction hash the message will execute as.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_abi import decode
from eth_utils import to_bytes

from ..exceptions import BridgingError
from ..logger import get_logger
from .abis import L1_MESSAGE_QUEUE_ABI, QUEUE_TRANSACTION_DATA_TYPES, QUEUE_TRANSACTION_TOPIC
from .connector import ChainConnector

logger = get_logger(__name__)


@dataclass(frozen=True)
class CrossDomainMessage:
    source_tx_hash: str
    queue_index: int
    destination_tx_hash: str


def find_queue_transaction_log(receipt: Dict[str, Any], message_queue: str) -> Optional[Dict[str, Any]]:
    """First log emitted by `message_queue` whose topic0 is QueueTransaction."""
    for log in receipt.get("logs", []):
        topics = log.get("topics") or []
        if log["address"].lower() != message_queue.lower() or not topics:
            continue
        if topics[0].lower() == QUEUE_TRANSACTION_TOPIC:
            return log
    return None


def decode_queue_index(log: Dict[str, Any]) -> int:
    _value, queue_index, _gas_limit, _data = decode(
        QUEUE_TRANSACTION_DATA_TYPES, to_bytes(hexstr=log["data"])
    )
    return int(queue_index)


def resolve_cross_domain_message(
    tx_hash: str,
    l1: ChainConnector,
    message_queue: str,
) -> CrossDomainMessage:
    """
    Resolve the L2 destination of an L1 deposit.

    Raises:
        BridgingError: receipt missing, no QueueTransaction log, or undecodable log data
    """
    receipt = l1.receipt(tx_hash)
    if receipt is None:
        raise BridgingError(f"Transaction not found: {tx_hash}")

    log = find_queue_transaction_log(receipt, message_queue)
    if log is None:
        raise BridgingError(f"QueueTransaction event not found in {tx_hash}")

    try:
        queue_index = decode_queue_index(log)
    except Exception as e:
        raise BridgingError(f"Malformed QueueTransaction data in {tx_hash}: {e}") from e

    destination = l1.call(message_queue, L1_MESSAGE_QUEUE_ABI, "getCrossDomainMessage", queue_index)
    destination_hash = destination if isinstance(destination, str) else "0x" + bytes(destination).hex()
    logger.debug("Resolved %s -> queue index %d, L2 tx %s", tx_hash, queue_index, destination_hash)
    return CrossDomainMessage(
        source_tx_hash=tx_hash,
        queue_index=queue_index,
        destination_tx_hash=destination_hash,
    )


def pending_queue_index(l1: ChainConnector, message_queue: str) -> int:
    """Index of the next L1 -> L2 message waiting to be included on L2."""
    return int(l1.call(message_queue, L1_MESSAGE_QUEUE_ABI, "pendingQueueIndex"))
