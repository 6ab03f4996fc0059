"""
Withdrawal Claim Procedure

An L2 -> L1 withdrawal becomes claimable once the batch containing it is
finalized on L1 and the indexer has a merkle proof for it. Claiming means
calling `relayMessageWithProof` on the L1 messenger with that proof.
"""

from typing import Callable, Optional

from eth_account.signers.local import LocalAccount
from eth_utils import to_bytes
from web3 import Web3
from web3.exceptions import ContractLogicError

from ..chain.abis import L1_MESSENGER_ABI
from ..chain.connector import ChainConnector
from ..exceptions import BridgingError, NetworkError
from ..indexer import ClaimInfo, WithdrawalIndexClient
from ..logger import get_logger
from ..polling import Found, Pending, PollResult, Rejected, poll_until

logger = get_logger(__name__)


def check_withdrawal(indexer: WithdrawalIndexClient, address: str, withdrawal_hash: str) -> PollResult:
    """
    One look at the indexer.

    Found(("claimed", hash)) when already relayed, Found(("claimable", ClaimInfo))
    when ready, Rejected when the indexer says it can never be claimed.
    """
    try:
        record = indexer.find_withdrawal(address, withdrawal_hash)
    except NetworkError as e:
        logger.warning("Bridge API unavailable, retrying: %s", e)
        return Pending("bridge API unavailable")

    if record is None:
        return Pending("withdrawal not indexed yet")
    if record.claimed:
        return Found(("claimed", record.counterpart_chain_tx.hash))
    if record.claim_info is None:
        return Pending("no proof yet")
    if not record.claim_info.claimable:
        return Rejected(f"withdrawal {withdrawal_hash} is not claimable")
    return Found(("claimable", record.claim_info))


def relay_withdrawal(l1: ChainConnector, account: LocalAccount, messenger: str, claim: ClaimInfo) -> str:
    """Submit `relayMessageWithProof` and wait for it; returns the L1 tx hash."""
    try:
        tx_hash = l1.transact(
            account,
            messenger,
            L1_MESSENGER_ABI,
            "relayMessageWithProof",
            Web3.to_checksum_address(claim.from_address),
            Web3.to_checksum_address(claim.to),
            claim.value,
            claim.nonce,
            to_bytes(hexstr=claim.message),
            (claim.proof.batch_index, to_bytes(hexstr=claim.proof.merkle_proof)),
        )
    except ContractLogicError as e:
        raise BridgingError(f"Claim transaction rejected: {e}") from e
    receipt = l1.wait_for_receipt(tx_hash)
    if receipt["status"] != 1:
        raise BridgingError(f"Claim transaction {tx_hash} reverted")
    return tx_hash


def claim_withdrawal(
    withdrawal_hash: str,
    account: LocalAccount,
    indexer: WithdrawalIndexClient,
    l1: ChainConnector,
    messenger: str,
    interval: float,
    sleep: Callable[[float], None],
    max_attempts: Optional[int] = None,
) -> str:
    """
    Wait until `withdrawal_hash` is claimable and claim it.

    Returns:
        Hash of the L1 transaction that relayed the message: ours, or the
        existing one when somebody already claimed it.

    Raises:
        BridgingError: not claimable, or the claim reverted
        PollTimeoutError: `max_attempts` exhausted
    """
    result = poll_until(
        lambda: check_withdrawal(indexer, account.address, withdrawal_hash),
        interval=interval,
        sleep=sleep,
        max_attempts=max_attempts,
        description=f"withdrawal {withdrawal_hash} to become claimable",
    )
    if isinstance(result, Rejected):
        raise BridgingError(result.reason)

    kind, value = result.value
    if kind == "claimed":
        logger.info("Withdrawal %s already claimed in %s", withdrawal_hash, value)
        return value

    tx_hash = relay_withdrawal(l1, account, messenger, value)
    logger.info("Withdrawal %s claimed in %s", withdrawal_hash, tx_hash)
    return tx_hash
