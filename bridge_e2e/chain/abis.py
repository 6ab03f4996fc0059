"""
Contract ABI fragments for the bridge surface the e2e run touches.

Only the functions and events actually called are listed.
"""

from eth_utils import keccak


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs],
        "stateMutability": mutability,
    }


L1_ETH_GATEWAY_ABI = [
    _fn("depositETH", [("amount", "uint256"), ("gasLimit", "uint256")], mutability="payable"),
]

L2_ETH_GATEWAY_ABI = [
    _fn("withdrawETH", [("amount", "uint256"), ("gasLimit", "uint256")], mutability="payable"),
]

L1_GATEWAY_ROUTER_ABI = [
    _fn(
        "depositERC20",
        [("_token", "address"), ("_amount", "uint256"), ("_gasLimit", "uint256")],
        mutability="payable",
    ),
    _fn("getL2ERC20Address", [("_l1Token", "address")], ["address"], mutability="view"),
]

L2_GATEWAY_ROUTER_ABI = [
    _fn(
        "withdrawERC20",
        [("token", "address"), ("amount", "uint256"), ("gasLimit", "uint256")],
        mutability="payable",
    ),
]

L1_MESSENGER_ABI = [
    {
        "type": "function",
        "name": "relayMessageWithProof",
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "nonce", "type": "uint256"},
            {"name": "message", "type": "bytes"},
            {
                "name": "proof",
                "type": "tuple",
                "components": [
                    {"name": "batchIndex", "type": "uint256"},
                    {"name": "merkleProof", "type": "bytes"},
                ],
            },
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
]

L1_MESSAGE_QUEUE_ABI = [
    _fn("getCrossDomainMessage", [("queueIndex", "uint256")], ["bytes32"], mutability="view"),
    _fn("pendingQueueIndex", [], ["uint256"], mutability="view"),
]

ERC20_ABI = [
    _fn("balanceOf", [("account", "address")], ["uint256"], mutability="view"),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], ["bool"]),
    _fn("allowance", [("owner", "address"), ("spender", "address")], ["uint256"], mutability="view"),
    _fn("symbol", [], ["string"], mutability="view"),
    _fn("decimals", [], ["uint8"], mutability="view"),
]

# QueueTransaction(address indexed sender, address indexed target, uint256 value,
#                  uint64 queueIndex, uint256 gasLimit, bytes data)
QUEUE_TRANSACTION_TOPIC = "0x" + keccak(
    text="QueueTransaction(address,address,uint256,uint64,uint256,bytes)"
).hex()

# Non-indexed part of QueueTransaction, in log data order
QUEUE_TRANSACTION_DATA_TYPES = ["uint256", "uint64", "uint256", "bytes"]
