"""
Withdrawal Index Client

Queries the bridge history API for L2 -> L1 withdrawals of an address.

Both endpoints answer with the envelope

    {"errcode": 0, "errmsg": "", "data": {"results": [...], "total": N}}

and any non-zero `errcode` is reported as a NetworkError.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .constants import HTTP_TIMEOUT
from .exceptions import NetworkError
from .logger import get_logger

logger = get_logger(__name__)

PAGE_SIZE = 100


def _int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(value, 0) if isinstance(value, str) else int(value)


@dataclass
class Proof:
    batch_index: int
    merkle_proof: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proof":
        return cls(
            batch_index=_int(data.get("batch_index")),
            merkle_proof=data.get("merkle_proof") or "0x",
        )


@dataclass
class ClaimInfo:
    """Everything `relayMessageWithProof` needs. `claimable=False` is final."""
    from_address: str
    to: str
    value: int
    nonce: int
    message: str
    proof: Proof
    claimable: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClaimInfo":
        return cls(
            from_address=data["from"],
            to=data["to"],
            value=_int(data.get("value")),
            nonce=_int(data.get("nonce")),
            message=data.get("message") or "0x",
            proof=Proof.from_dict(data.get("proof") or {}),
            claimable=bool(data.get("claimable", False)),
        )


@dataclass
class CounterpartTx:
    hash: str = ""
    block_number: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CounterpartTx":
        data = data or {}
        return cls(hash=data.get("hash") or "", block_number=_int(data.get("block_number")))


@dataclass
class WithdrawalRecord:
    hash: str
    counterpart_chain_tx: CounterpartTx
    claim_info: Optional[ClaimInfo]
    block_number: int = 0
    tx_status: int = 0
    message_hash: str = ""
    l1_token_address: str = ""
    l2_token_address: str = ""
    token_amounts: List[str] = field(default_factory=list)
    block_timestamp: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WithdrawalRecord":
        claim = data.get("claim_info")
        return cls(
            hash=data["hash"],
            counterpart_chain_tx=CounterpartTx.from_dict(data.get("counterpart_chain_tx")),
            claim_info=ClaimInfo.from_dict(claim) if claim else None,
            block_number=_int(data.get("block_number")),
            tx_status=_int(data.get("tx_status")),
            message_hash=data.get("message_hash") or "",
            l1_token_address=data.get("l1_token_address") or "",
            l2_token_address=data.get("l2_token_address") or "",
            token_amounts=list(data.get("token_amounts") or []),
            block_timestamp=_int(data.get("block_timestamp")),
        )

    @property
    def claimed(self) -> bool:
        return bool(self.counterpart_chain_tx.hash)


class WithdrawalIndexClient:
    """
    Args:
        base_url: BRIDGE_API_URI, e.g. https://bridge-history-api.example.com/api
        client: Shared httpx.Client (tests inject one with a MockTransport).
    """

    def __init__(self, base_url: str, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=HTTP_TIMEOUT)

    def close(self) -> None:
        self._client.close()

    def _get_results(self, path: str, address: str) -> List[Dict[str, Any]]:
        url = f"{self.base_url}{path}"
        params = {"address": address, "page": 1, "page_size": PAGE_SIZE}
        try:
            response = self._client.get(url, params=params)
            response.raise_for_status()
            body = response.json()
        except httpx.RequestError as e:
            raise NetworkError(f"Bridge API request to {url} failed: {e}") from e
        except httpx.HTTPStatusError as e:
            raise NetworkError(f"Bridge API returned HTTP {e.response.status_code} for {url}") from e
        except json.JSONDecodeError as e:
            raise NetworkError(f"Bridge API returned invalid JSON for {url}") from e

        if body.get("errcode") != 0:
            raise NetworkError(f"Bridge API error: {body.get('errmsg')}")
        data = body.get("data") or {}
        return data.get("results") or []

    def _records(self, path: str, address: str) -> List[WithdrawalRecord]:
        try:
            return [WithdrawalRecord.from_dict(r) for r in self._get_results(path, address)]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Malformed withdrawal record from bridge API: {e}") from e

    def withdrawals(self, address: str) -> List[WithdrawalRecord]:
        """All L2 -> L1 withdrawals of `address` (first page)."""
        return self._records("/l2/withdrawals", address)

    def unclaimed_withdrawals(self, address: str) -> List[WithdrawalRecord]:
        return self._records("/l2/unclaimed/withdrawals", address)

    def find_withdrawal(self, address: str, tx_hash: str) -> Optional[WithdrawalRecord]:
        wanted = tx_hash.lower()
        for record in self.withdrawals(address):
            if record.hash.lower() == wanted:
                return record
        return None
