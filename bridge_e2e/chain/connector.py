"""
Chain Connector

Thin, synchronous wrapper over a web3.py `HTTPProvider` exposing exactly what
the pipeline needs: balances, code, receipts, view calls and signed
transactions. Receipts are normalized to plain dicts with 0x-hex strings so
the rest of the package (and the test fakes) never handles web3 types.

Transport failures surface as `NetworkError`. Contract reverts raised while
estimating gas (`ContractLogicError`) pass through; callers wrap them into
their own failure domain.
"""

import functools
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3Exception

from ..constants import HTTP_TIMEOUT, RECEIPT_TIMEOUT
from ..exceptions import DeploymentError, NetworkError
from ..logger import get_logger

logger = get_logger(__name__)

ETH_TRANSFER_GAS = 21_000


def _rpc(method):
    """Map transport-level failures of a connector call to NetworkError."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except (ContractLogicError, NetworkError, DeploymentError):
            raise
        except (Web3Exception, OSError) as e:
            raise NetworkError(f"{self.name} RPC {method.__name__} failed: {e}") from e
    return wrapper


class ChainConnector:
    """
    One chain endpoint.

    Args:
        rpc_url: HTTP JSON-RPC endpoint.
        name: Label used in logs and errors ("L1", "L2").
        web3: Pre-built Web3 instance (tests); built from rpc_url when omitted.
        receipt_timeout: Seconds `wait_for_receipt` waits before giving up.
    """

    def __init__(
        self,
        rpc_url: str,
        name: str = "L1",
        web3: Optional[Web3] = None,
        receipt_timeout: int = RECEIPT_TIMEOUT,
    ):
        self.rpc_url = rpc_url
        self.name = name
        self.receipt_timeout = receipt_timeout
        self.w3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": HTTP_TIMEOUT}))
        self._chain_id: Optional[int] = None

    def __repr__(self) -> str:
        return f"ChainConnector({self.name}, {self.rpc_url})"

    # --- reads ------------------------------------------------------------

    @property
    @_rpc
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    @_rpc
    def balance(self, address: str) -> int:
        return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))

    @_rpc
    def code(self, address: str) -> bytes:
        return bytes(self.w3.eth.get_code(Web3.to_checksum_address(address)))

    @_rpc
    def receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Normalized receipt, or None while the transaction is unknown or pending."""
        try:
            raw = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return normalize_receipt(raw)

    @_rpc
    def wait_for_receipt(self, tx_hash: str, timeout: Optional[int] = None) -> Dict[str, Any]:
        try:
            raw = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout or self.receipt_timeout,
            )
        except TimeExhausted as e:
            raise NetworkError(f"{self.name} transaction {tx_hash} not mined in time") from e
        return normalize_receipt(raw)

    @_rpc
    def call(self, address: str, abi: List[Dict[str, Any]], fn: str, *args: Any) -> Any:
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        return contract.functions[fn](*args).call()

    @_rpc
    def finalized_block_number(self) -> int:
        return int(self.w3.eth.get_block("finalized")["number"])

    # --- writes -----------------------------------------------------------

    def _base_tx(self, account: LocalAccount, value: int = 0) -> Dict[str, Any]:
        return {
            "from": account.address,
            "value": value,
            "nonce": self.w3.eth.get_transaction_count(account.address, "pending"),
            "chainId": self.chain_id,
        }

    def _send(self, account: LocalAccount, tx: Dict[str, Any]) -> str:
        signed = account.sign_transaction(tx)
        tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))
        logger.debug("%s sent %s from %s", self.name, tx_hash, account.address)
        return tx_hash

    @_rpc
    def transact(
        self,
        account: LocalAccount,
        address: str,
        abi: List[Dict[str, Any]],
        fn: str,
        *args: Any,
        value: int = 0,
    ) -> str:
        """Sign and send a contract call; returns the tx hash without waiting."""
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        tx = contract.functions[fn](*args).build_transaction(self._base_tx(account, value))
        return self._send(account, tx)

    @_rpc
    def transfer(self, account: LocalAccount, to: str, value: int) -> str:
        tx = self._base_tx(account, value)
        tx.update(
            to=Web3.to_checksum_address(to),
            gas=ETH_TRANSFER_GAS,
            gasPrice=self.w3.eth.gas_price,
        )
        return self._send(account, tx)

    @_rpc
    def deploy(
        self,
        account: LocalAccount,
        abi: List[Dict[str, Any]],
        bytecode: str,
        *args: Any,
    ) -> Tuple[str, str]:
        """
        Deploy a compiled contract with constructor `args` and wait for it to be mined.

        Returns:
            (tx_hash, contract_address)

        Raises:
            DeploymentError: the creation transaction reverted
        """
        factory = self.w3.eth.contract(abi=abi, bytecode=bytecode)
        tx = factory.constructor(*args).build_transaction(self._base_tx(account))
        tx_hash = self._send(account, tx)
        receipt = self.wait_for_receipt(tx_hash)
        if receipt["status"] != 1 or not receipt["contractAddress"]:
            raise DeploymentError(f"{self.name} deployment {tx_hash} reverted")
        return tx_hash, receipt["contractAddress"]


def normalize_receipt(raw: Any) -> Dict[str, Any]:
    """web3 receipt (AttributeDict with HexBytes) → plain dict of ints and 0x-strings."""
    logs: Sequence[Any] = raw.get("logs", [])
    return {
        "transactionHash": Web3.to_hex(raw["transactionHash"]),
        "status": int(raw.get("status", 0)),
        "blockNumber": int(raw["blockNumber"]),
        "contractAddress": raw.get("contractAddress"),
        "logs": [
            {
                "address": log["address"],
                "data": Web3.to_hex(log["data"]),
                "topics": [Web3.to_hex(t) for t in log["topics"]],
            }
            for log in logs
        ],
    }
