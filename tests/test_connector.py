"""
Tests for ChainConnector error mapping and receipt normalization, with a
mocked Web3 instance.
"""

from unittest.mock import MagicMock

import pytest
from web3.datastructures import AttributeDict
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

from bridge_e2e.chain.abis import ERC20_ABI
from bridge_e2e.chain.connector import ChainConnector, normalize_receipt
from bridge_e2e.exceptions import DeploymentError, NetworkError

ADDRESS = "0x" + "ab" * 20
TX_HASH = bytes.fromhex("aa" * 32)


def raw_receipt(status=1, contract=None, logs=()):
    return AttributeDict({
        "transactionHash": TX_HASH,
        "status": status,
        "blockNumber": 42,
        "contractAddress": contract,
        "logs": list(logs),
    })


@pytest.fixture
def w3():
    mock = MagicMock()
    mock.eth.chain_id = 534351
    mock.eth.get_transaction_count.return_value = 0
    mock.eth.gas_price = 10
    mock.eth.send_raw_transaction.return_value = TX_HASH
    return mock


@pytest.fixture
def chain(w3):
    return ChainConnector("http://l2.test", "L2", web3=w3, receipt_timeout=5)


@pytest.fixture
def account():
    acct = MagicMock()
    acct.address = ADDRESS
    acct.sign_transaction.return_value.raw_transaction = b"\x02\x01"
    return acct


class TestNormalizeReceipt:
    def test_plain_values(self):
        log = AttributeDict({
            "address": ADDRESS,
            "data": bytes.fromhex("0102"),
            "topics": [bytes.fromhex("ff" * 32)],
        })
        receipt = normalize_receipt(raw_receipt(logs=[log]))
        assert receipt == {
            "transactionHash": "0x" + "aa" * 32,
            "status": 1,
            "blockNumber": 42,
            "contractAddress": None,
            "logs": [{"address": ADDRESS, "data": "0x0102", "topics": ["0x" + "ff" * 32]}],
        }


class TestReads:
    def test_chain_id_cached(self, chain, w3):
        assert chain.chain_id == 534351
        w3.eth.chain_id = 1
        assert chain.chain_id == 534351

    def test_balance(self, chain, w3):
        w3.eth.get_balance.return_value = 7
        assert chain.balance(ADDRESS) == 7

    def test_transport_failure_is_network_error(self, chain, w3):
        w3.eth.get_balance.side_effect = ConnectionError("refused")
        with pytest.raises(NetworkError, match="L2 RPC balance failed"):
            chain.balance(ADDRESS)

    def test_unknown_receipt_is_none(self, chain, w3):
        w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")
        assert chain.receipt("0x01") is None

    def test_receipt(self, chain, w3):
        w3.eth.get_transaction_receipt.return_value = raw_receipt()
        assert chain.receipt("0x01")["status"] == 1

    def test_wait_timeout(self, chain, w3):
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("slow")
        with pytest.raises(NetworkError, match="not mined"):
            chain.wait_for_receipt("0x01")
        assert w3.eth.wait_for_transaction_receipt.call_args.kwargs["timeout"] == 5

    def test_view_call(self, chain, w3):
        w3.eth.contract.return_value.functions.__getitem__.return_value.return_value.call.return_value = 99
        assert chain.call(ADDRESS, ERC20_ABI, "balanceOf", ADDRESS) == 99

    def test_finalized_block_number(self, chain, w3):
        w3.eth.get_block.return_value = AttributeDict({"number": 1234})
        assert chain.finalized_block_number() == 1234
        w3.eth.get_block.assert_called_once_with("finalized")


class TestWrites:
    def test_transfer(self, chain, w3, account):
        assert chain.transfer(account, ADDRESS, 5) == "0x" + "aa" * 32
        tx = account.sign_transaction.call_args.args[0]
        assert tx["value"] == 5
        assert tx["gas"] == 21_000
        assert tx["chainId"] == 534351
        w3.eth.send_raw_transaction.assert_called_once_with(b"\x02\x01")

    def test_contract_revert_passes_through(self, chain, w3, account):
        build = w3.eth.contract.return_value.functions.__getitem__.return_value.return_value.build_transaction
        build.side_effect = ContractLogicError("execution reverted")
        with pytest.raises(ContractLogicError):
            chain.transact(account, ADDRESS, ERC20_ABI, "approve", ADDRESS, 1)

    def test_deploy(self, chain, w3, account):
        constructor = w3.eth.contract.return_value.constructor
        constructor.return_value.build_transaction.return_value = {"data": "0x6080", "gas": 500_000}
        w3.eth.wait_for_transaction_receipt.return_value = raw_receipt(contract=ADDRESS)

        result = chain.deploy(account, ERC20_ABI, "0x6080", "Token", "TKN", 18, 1000)

        assert result == ("0x" + "aa" * 32, ADDRESS)
        assert w3.eth.contract.call_args.kwargs == {"abi": ERC20_ABI, "bytecode": "0x6080"}
        constructor.assert_called_once_with("Token", "TKN", 18, 1000)
        base_tx = constructor.return_value.build_transaction.call_args.args[0]
        assert base_tx["from"] == ADDRESS
        assert base_tx["chainId"] == 534351
        account.sign_transaction.assert_called_once_with({"data": "0x6080", "gas": 500_000})

    def test_deploy_revert(self, chain, w3, account):
        constructor = w3.eth.contract.return_value.constructor
        constructor.return_value.build_transaction.return_value = {"data": "0x6080"}
        w3.eth.wait_for_transaction_receipt.return_value = raw_receipt(status=0)
        with pytest.raises(DeploymentError):
            chain.deploy(account, ERC20_ABI, "0x6080")
