"""
Shared fixtures: in-memory L1/L2 chains wired together like a bridge, an
indexer API served by httpx.MockTransport, and a ready-made config.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import keccak

from bridge_e2e.chain.abis import QUEUE_TRANSACTION_TOPIC
from bridge_e2e.config import E2EConfig
from bridge_e2e.constants import TOKEN_INITIAL_SUPPLY
from bridge_e2e.exceptions import NetworkError
from bridge_e2e.indexer import WithdrawalIndexClient


# ============================================================================
# Addresses
# ============================================================================

L1_ETH_GATEWAY = "0x" + "a1" * 20
L2_ETH_GATEWAY = "0x" + "a2" * 20
L1_MESSAGE_QUEUE = "0x" + "b1" * 20
L1_GATEWAY_ROUTER = "0x" + "c1" * 20
L2_GATEWAY_ROUTER = "0x" + "c2" * 20
L1_MESSENGER = "0x" + "d1" * 20
L2_TOKEN = "0x" + "e2" * 20

FUNDER_KEY = "0x" + "11" * 32
IDENTITY_KEY = "0x" + "01" * 32
IDENTITY_ADDRESS = Account.from_key(IDENTITY_KEY).address
BRIDGE_API = "https://bridge-api.test/api"

CONFIG_DICT = {
    "general": {
        "L1_RPC_ENDPOINT": "http://l1-devnet:8545",
        "L2_RPC_ENDPOINT": "http://l2-sequencer:8545",
    },
    "frontend": {
        "EXTERNAL_RPC_URI_L1": "https://l1-rpc.example.com",
        "EXTERNAL_RPC_URI_L2": "https://rpc.example.com",
        "BRIDGE_API_URI": BRIDGE_API,
    },
    "accounts": {"DEPLOYER_PRIVATE_KEY": FUNDER_KEY},
}

CONTRACTS_DICT = {
    "L1_ETH_GATEWAY_PROXY_ADDR": L1_ETH_GATEWAY,
    "L2_ETH_GATEWAY_PROXY_ADDR": L2_ETH_GATEWAY,
    "L1_MESSAGE_QUEUE_PROXY_ADDR": L1_MESSAGE_QUEUE,
    "L1_GATEWAY_ROUTER_PROXY_ADDR": L1_GATEWAY_ROUTER,
    "L2_GATEWAY_ROUTER_PROXY_ADDR": L2_GATEWAY_ROUTER,
    "L1_SCROLL_MESSENGER_PROXY_ADDR": L1_MESSENGER,
}


def _pad_topic(address: str) -> str:
    return "0x" + address[2:].lower().rjust(64, "0")


def queue_transaction_log(sender: str, target: str, value: int, queue_index: int,
                          gas_limit: int = 170_000, emitter: str = L1_MESSAGE_QUEUE) -> Dict[str, Any]:
    data = encode(["uint256", "uint64", "uint256", "bytes"], [value, queue_index, gas_limit, b""])
    return {
        "address": emitter,
        "data": "0x" + data.hex(),
        "topics": [QUEUE_TRANSACTION_TOPIC, _pad_topic(sender), _pad_topic(target)],
    }


# ============================================================================
# Fake chain
# ============================================================================

class FakeChain:
    """Duck-typed ChainConnector keeping balances, tokens and receipts in dicts."""

    def __init__(self, name: str, chain_id: int):
        self.name = name
        self.chain_id = chain_id
        self.rpc_url = f"http://{name.lower()}.test"
        self.balances: Dict[str, int] = {}
        self.token_balances: Dict[tuple, int] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.views: Dict[str, Callable[..., Any]] = {}
        self.handlers: Dict[str, Callable[..., List[Dict[str, Any]]]] = {}
        self.reverting: set = set()
        self.failing: Dict[str, Exception] = {}
        self._counter = 0
        self._block = 100
        self.finalized: Optional[int] = None

    def _new_hash(self) -> str:
        self._counter += 1
        return "0x" + keccak(text=f"{self.name}-tx-{self._counter}").hex()

    def _record_receipt(self, tx_hash: str, status: int = 1, logs=None, contract: Optional[str] = None):
        self._block += 1
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "status": status,
            "blockNumber": self._block,
            "contractAddress": contract,
            "logs": logs or [],
        }

    def add_balance(self, address: str, amount: int) -> None:
        key = address.lower()
        self.balances[key] = self.balances.get(key, 0) + amount

    def add_tokens(self, token: str, address: str, amount: int) -> None:
        key = (token.lower(), address.lower())
        self.token_balances[key] = self.token_balances.get(key, 0) + amount

    def count(self, kind: str, fn: Optional[str] = None) -> int:
        return sum(1 for c in self.calls if c[0] == kind and (fn is None or c[1] == fn))

    # --- connector surface ------------------------------------------------

    def balance(self, address: str) -> int:
        self.calls.append(("balance", address))
        return self.balances.get(address.lower(), 0)

    def code(self, address: str) -> bytes:
        return b""

    def receipt(self, tx_hash: str):
        self.calls.append(("receipt", tx_hash))
        return self.receipts.get(tx_hash)

    def wait_for_receipt(self, tx_hash: str, timeout=None):
        self.calls.append(("wait_for_receipt", tx_hash))
        if tx_hash not in self.receipts:
            raise NetworkError(f"{self.name} transaction {tx_hash} not mined in time")
        return self.receipts[tx_hash]

    def call(self, address: str, abi, fn: str, *args):
        self.calls.append(("call", fn, args))
        if fn == "balanceOf":
            return self.token_balances.get((address.lower(), args[0].lower()), 0)
        return self.views[fn](*args)

    def transact(self, account, address: str, abi, fn: str, *args, value: int = 0) -> str:
        self.calls.append(("transact", fn, args, value))
        if fn in self.failing:
            raise self.failing.pop(fn)
        tx_hash = self._new_hash()
        logs = []
        if fn in self.handlers:
            logs = self.handlers[fn](account, address, args, value)
        self.add_balance(account.address, -value)
        self._record_receipt(tx_hash, status=0 if fn in self.reverting else 1, logs=logs)
        return tx_hash

    def transfer(self, account, to: str, value: int) -> str:
        self.calls.append(("transfer", to, value))
        self.add_balance(account.address, -value)
        self.add_balance(to, value)
        tx_hash = self._new_hash()
        self._record_receipt(tx_hash)
        return tx_hash

    def finalized_block_number(self) -> int:
        self.calls.append(("finalized_block_number",))
        return self._block if self.finalized is None else self.finalized

    def deploy(self, account, abi, bytecode: str, *args):
        self.calls.append(("deploy", bytecode, args))
        tx_hash = self._new_hash()
        address = "0x" + keccak(text=tx_hash)[-20:].hex()
        # the constructor mints its last argument to the deployer
        self.add_tokens(address, account.address, args[-1] if args else TOKEN_INITIAL_SUPPLY)
        self._record_receipt(tx_hash, contract=address)
        return tx_hash, address


class FakeBridge:
    """Two fake chains plus the bookkeeping a real bridge and its indexer do."""

    def __init__(self):
        self.l1 = FakeChain("L1", 11155111)
        self.l2 = FakeChain("L2", 534351)
        self.queue: List[str] = []
        self.withdrawals: List[Dict[str, Any]] = []
        self.claimed: Dict[str, str] = {}

        self.l1.views["getCrossDomainMessage"] = lambda index: self.queue[index]
        self.l1.views["pendingQueueIndex"] = lambda: len(self.queue)
        self.l1.views["getL2ERC20Address"] = lambda token: L2_TOKEN
        self.l1.handlers["depositETH"] = self._deposit_eth
        self.l1.handlers["depositERC20"] = self._deposit_erc20
        self.l1.handlers["relayMessageWithProof"] = self._relay
        self.l2.handlers["withdrawETH"] = self._withdraw
        self.l2.handlers["withdrawERC20"] = self._withdraw

    def _enqueue(self, sender: str, target: str, value: int) -> Dict[str, Any]:
        index = len(self.queue)
        l2_hash = self.l2._new_hash()
        self.l2._record_receipt(l2_hash)
        self.queue.append(l2_hash)
        return queue_transaction_log(sender, target, value, index)

    def _deposit_eth(self, account, address, args, value):
        amount, _gas_limit = args
        self.l2.add_balance(account.address, amount)
        return [self._enqueue(account.address, account.address, amount)]

    def _deposit_erc20(self, account, address, args, value):
        token, amount, _gas_limit = args
        self.l1.add_tokens(token, account.address, -amount)
        self.l2.add_tokens(L2_TOKEN, account.address, amount)
        return [self._enqueue(account.address, account.address, 0)]

    def _withdraw(self, account, address, args, value):
        # transact() has already drawn this transaction's hash from the counter
        tx_hash = "0x" + keccak(text=f"L2-tx-{self.l2._counter}").hex()
        self.withdrawals.append({"hash": tx_hash, "sender": account.address})
        return []

    def _relay(self, account, address, args, value):
        self.claimed[str(args[3])] = "relayed"
        return []

    def indexer_results(self, address: str, claimable: bool = True) -> List[Dict[str, Any]]:
        results = []
        for nonce, w in enumerate(self.withdrawals):
            if w["sender"].lower() != address.lower():
                continue
            results.append(withdrawal_record(w["hash"], sender=w["sender"], nonce=nonce, claimable=claimable))
        return results


def withdrawal_record(tx_hash: str, sender: str = "0x" + "ab" * 20, nonce: int = 0,
                      claimable: Optional[bool] = True, counterpart: str = "") -> Dict[str, Any]:
    record = {
        "hash": tx_hash,
        "message_hash": "0x" + "cd" * 32,
        "token_type": 1,
        "token_amounts": ["1000000000000000"],
        "l1_token_address": "",
        "l2_token_address": "",
        "block_number": 4242,
        "tx_status": 0,
        "counterpart_chain_tx": {"hash": counterpart, "block_number": 77 if counterpart else 0},
        "claim_info": None,
        "block_timestamp": 1700000000,
    }
    if claimable is not None:
        record["claim_info"] = {
            "from": L2_ETH_GATEWAY,
            "to": L1_ETH_GATEWAY,
            "value": "1000000000000000",
            "nonce": str(nonce),
            "message": "0x8eaac8a3",
            "proof": {"batch_index": "17", "merkle_proof": "0x" + "00" * 32},
            "claimable": claimable,
        }
    return record


def envelope(results: List[Dict[str, Any]], errcode: int = 0, errmsg: str = "") -> Dict[str, Any]:
    return {"errcode": errcode, "errmsg": errmsg, "data": {"results": results, "total": len(results)}}


def mock_indexer(handler: Callable[[httpx.Request], httpx.Response]) -> WithdrawalIndexClient:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WithdrawalIndexClient(BRIDGE_API, client=client)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def funder():
    return Account.from_key(FUNDER_KEY)


@pytest.fixture
def config():
    cfg = E2EConfig.from_dict(json.loads(json.dumps(CONFIG_DICT)), dict(CONTRACTS_DICT))
    cfg.e2e.poll_interval = 0.01
    cfg.e2e.balance_poll_interval = 0.01
    cfg.validate()
    return cfg


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def bridge_indexer(bridge):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/l2/withdrawals")
        address = request.url.params["address"]
        return httpx.Response(200, json=envelope(bridge.indexer_results(address)))
    return mock_indexer(handler)
