"""
Stage functions

Each stage is a plain function `stage(ctx) -> dict` registered under its
name with the failure domain it reports. The returned dict becomes the
stage's artifacts. A stage reads earlier results only through
`ctx.artifact(stage, key)`.

Anything a stage raises that is not already an `E2EException` is wrapped in
the stage's domain error, chained to the original.
"""

import functools
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Type

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from ..chain.abis import (
    ERC20_ABI,
    L1_ETH_GATEWAY_ABI,
    L1_GATEWAY_ROUTER_ABI,
    L2_ETH_GATEWAY_ABI,
    L2_GATEWAY_ROUTER_ABI,
)
from ..chain.connector import ChainConnector
from ..chain.explorer import address_link, tx_link
from ..chain.messages import pending_queue_index, resolve_cross_domain_message
from ..chain.token import TOKEN_CONSTRUCTOR_ARGS, compile_token
from ..config import E2EConfig
from ..constants import (
    DEPOSIT_AMOUNT,
    DEPOSIT_FEE_ALLOWANCE,
    DEPOSIT_GAS_LIMIT,
    FUNDING_AMOUNT,
    L2_FUNDING_AMOUNT,
    WITHDRAW_AMOUNT,
    WITHDRAW_GAS_LIMIT,
)
from ..exceptions import (
    BridgingError,
    ConfigurationError,
    DeploymentError,
    E2EException,
    NetworkError,
    WalletFundingError,
)
from ..indexer import WithdrawalIndexClient
from ..logger import get_logger
from ..polling import Found, Pending, PollResult, Rejected, poll_until
from .claims import claim_withdrawal
from .funding import DirectTransferFunding, FundingStrategy, ManualFunding
from .state import Identity, PipelineState

logger = get_logger(__name__)

L2_FUNDING_CHOICES = ("bridge", "funder", "manual")


@dataclass
class StageContext:
    """
    Everything a stage may touch. Built once per run by the orchestrator.

    `choose_l2_funding` is only consulted when `fund_l2` actually runs, so a
    resumed run past that stage never prompts.
    """
    config: E2EConfig
    l1: ChainConnector
    l2: ChainConnector
    indexer: WithdrawalIndexClient
    state: PipelineState
    l1_funding: FundingStrategy
    manual_funding: ManualFunding
    funder: Optional[DirectTransferFunding] = None
    choose_l2_funding: Callable[["StageContext"], str] = lambda ctx: "bridge"
    skip_wallet_generation: bool = False
    operator_key: Optional[str] = None
    sleep: Callable[[float], None] = time.sleep
    account: Optional[LocalAccount] = None
    current_stage: str = ""

    def artifact(self, stage: str, key: str) -> Any:
        return self.state.artifact(stage, key, reader=self.current_stage)

    @property
    def poll_interval(self) -> float:
        return self.config.e2e.poll_interval

    @property
    def balance_poll_interval(self) -> float:
        return self.config.e2e.balance_poll_interval

    @property
    def max_poll_attempts(self) -> Optional[int]:
        return self.config.e2e.attempts_bound

    def l1_link(self, tx_hash: str) -> str:
        return tx_link(tx_hash, self.l1.chain_id, self.config.frontend.external_explorer_uri_l1 or None)

    def l2_link(self, tx_hash: str) -> str:
        return tx_link(tx_hash, self.l2.chain_id, self.config.frontend.external_explorer_uri_l2 or None)


StageFunction = Callable[[StageContext], Dict[str, Any]]

STAGE_FUNCTIONS: Dict[str, Tuple[StageFunction, Type[E2EException]]] = {}


def stage(name: str, error: Type[E2EException]):
    """Register a stage function and wrap foreign exceptions into `error`."""
    def decorator(fn: StageFunction) -> StageFunction:
        @functools.wraps(fn)
        def wrapper(ctx: StageContext) -> Dict[str, Any]:
            try:
                return fn(ctx)
            except E2EException:
                raise
            except Exception as e:
                raise error(f"{name}: {e}") from e
        STAGE_FUNCTIONS[name] = (wrapper, error)
        return wrapper
    return decorator


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

def _eth(wei: int) -> str:
    return f"{Web3.from_wei(wei, 'ether')} ETH"


def _confirm(chain: ChainConnector, tx_hash: str, error: Type[E2EException], what: str) -> Dict[str, Any]:
    receipt = chain.wait_for_receipt(tx_hash)
    if receipt["status"] != 1:
        raise error(f"{what} transaction {tx_hash} reverted on {chain.name}")
    return receipt


def _transient(check: Callable[[], PollResult]) -> Callable[[], PollResult]:
    """Treat RPC hiccups inside a poll as 'not yet'."""
    def wrapped() -> PollResult:
        try:
            return check()
        except NetworkError as e:
            logger.warning("RPC unavailable, retrying: %s", e)
            return Pending("RPC unavailable")
    return wrapped


def _await_token_balance(ctx: StageContext, chain: ChainConnector, token: str) -> int:
    address = ctx.account.address

    def check() -> PollResult:
        balance = chain.call(token, ERC20_ABI, "balanceOf", address)
        return Found(balance) if balance > 0 else Pending(f"{chain.name} token balance is 0")

    result = poll_until(
        _transient(check),
        interval=ctx.balance_poll_interval,
        sleep=ctx.sleep,
        max_attempts=ctx.max_poll_attempts,
        description=f"token {token} balance on {chain.name}",
    )
    return result.value


def _l1_finality(ctx: StageContext, l1_block: int) -> str:
    finalized = ctx.l1.finalized_block_number()
    if l1_block <= finalized:
        return f"L1 block {l1_block} is finalized"
    return f"waiting for L1 block {l1_block} to be finalized, finalized height is {finalized}"


def _await_l2_message(ctx: StageContext, l2_tx_hash: str, queue_index: int, l1_block: int) -> Dict[str, Any]:
    """Wait until the L1 -> L2 message executes on L2. A reverted execution is fatal."""
    queue = ctx.config.contracts.l1_message_queue

    def check() -> PollResult:
        receipt = ctx.l2.receipt(l2_tx_hash)
        if receipt is None:
            pending = pending_queue_index(ctx.l1, queue)
            return Pending(
                f"{_l1_finality(ctx, l1_block)}; L1 queue at {pending}, message at {queue_index}"
            )
        if receipt["status"] != 1:
            return Rejected(f"L2 transaction {l2_tx_hash} reverted")
        return Found(receipt)

    result = poll_until(
        _transient(check),
        interval=ctx.poll_interval,
        sleep=ctx.sleep,
        max_attempts=ctx.max_poll_attempts,
        description=f"L2 execution of {l2_tx_hash}",
    )
    if isinstance(result, Rejected):
        raise BridgingError(result.reason)
    return result.value


def _approve(ctx: StageContext, chain: ChainConnector, token: str, spender: str, amount: int) -> str:
    tx_hash = chain.transact(ctx.account, token, ERC20_ABI, "approve", spender, amount)
    _confirm(chain, tx_hash, BridgingError, "Approve")
    return tx_hash


def _deploy_token(ctx: StageContext, chain: ChainConnector) -> Tuple[str, str]:
    token = compile_token()
    return chain.deploy(ctx.account, token.abi, token.bytecode, *TOKEN_CONSTRUCTOR_ARGS)


def _fund(ctx: StageContext, chain: ChainConnector, strategy: FundingStrategy, target: int) -> Dict[str, Any]:
    address = ctx.account.address
    balance = chain.balance(address)
    shortfall = max(0, target - balance)
    if shortfall == 0:
        logger.info("[%s] %s already holds %s on %s", ctx.current_stage, address, _eth(balance), chain.name)
        return {"strategy": strategy.name, "amount": 0, "tx_hash": None}
    tx_hash = strategy.fund(chain, address, shortfall, target)
    logger.info("[%s] Funded %s with %s on %s", ctx.current_stage, address, _eth(shortfall), chain.name)
    return {"strategy": strategy.name, "amount": shortfall, "tx_hash": tx_hash}


# ══════════════════════════════════════════════════════════════════════
#  STAGES
# ══════════════════════════════════════════════════════════════════════

@stage("generate_identity", ConfigurationError)
def generate_identity(ctx: StageContext) -> Dict[str, Any]:
    if ctx.skip_wallet_generation:
        key = ctx.operator_key or ctx.config.accounts.deployer_private_key
        if not key:
            raise ConfigurationError(
                "Skipping wallet generation needs --private-key or DEPLOYER_PRIVATE_KEY"
            )
        account = Account.from_key(key)
        ctx.state.identity = Identity(address=account.address, private_key=None, generated=False)
        logger.info("[generate_identity] Skipping wallet generation, using: %s", account.address)
    else:
        account = Account.create()
        ctx.state.identity = Identity(
            address=account.address,
            private_key=Web3.to_hex(account.key),
            generated=True,
        )
        logger.info("[generate_identity] Generated new wallet: %s", account.address)
        logger.warning("[generate_identity] Private Key: %s", Web3.to_hex(account.key))
    ctx.account = account
    return {"address": account.address, "generated": not ctx.skip_wallet_generation}


@stage("fund_l1", WalletFundingError)
def fund_l1(ctx: StageContext) -> Dict[str, Any]:
    return _fund(ctx, ctx.l1, ctx.l1_funding, FUNDING_AMOUNT)


@stage("bridge_native_l1_to_l2", BridgingError)
def bridge_native_l1_to_l2(ctx: StageContext) -> Dict[str, Any]:
    contracts = ctx.config.contracts
    value = DEPOSIT_AMOUNT + DEPOSIT_FEE_ALLOWANCE
    logger.info("[bridge_native_l1_to_l2] Depositing %s (sending %s)", _eth(DEPOSIT_AMOUNT), _eth(value))
    tx_hash = ctx.l1.transact(
        ctx.account,
        contracts.l1_eth_gateway,
        L1_ETH_GATEWAY_ABI,
        "depositETH",
        DEPOSIT_AMOUNT,
        DEPOSIT_GAS_LIMIT,
        value=value,
    )
    receipt = _confirm(ctx.l1, tx_hash, BridgingError, "Deposit")
    logger.info("[bridge_native_l1_to_l2] Deposit tx: %s", ctx.l1_link(tx_hash))

    message = resolve_cross_domain_message(tx_hash, ctx.l1, contracts.l1_message_queue)
    logger.info(
        "[bridge_native_l1_to_l2] Queue index %d, L2 tx: %s",
        message.queue_index, message.destination_tx_hash,
    )
    return {
        "tx_hash": tx_hash,
        "amount": DEPOSIT_AMOUNT,
        "block_number": receipt["blockNumber"],
        "queue_index": message.queue_index,
        "l2_tx_hash": message.destination_tx_hash,
    }


@stage("deploy_token_l1", DeploymentError)
def deploy_token_l1(ctx: StageContext) -> Dict[str, Any]:
    tx_hash, token = _deploy_token(ctx, ctx.l1)
    logger.info("[deploy_token_l1] Token deployed at %s (%s)", token, ctx.l1_link(tx_hash))
    return {"tx_hash": tx_hash, "token": token}


@stage("bridge_token_l1_to_l2", BridgingError)
def bridge_token_l1_to_l2(ctx: StageContext) -> Dict[str, Any]:
    contracts = ctx.config.contracts
    token = ctx.artifact("deploy_token_l1", "token")
    router = contracts.l1_gateway_router

    balance = _await_token_balance(ctx, ctx.l1, token)
    amount = balance // 2
    approve_tx = _approve(ctx, ctx.l1, token, router, amount)

    tx_hash = ctx.l1.transact(
        ctx.account,
        router,
        L1_GATEWAY_ROUTER_ABI,
        "depositERC20",
        token,
        amount,
        DEPOSIT_GAS_LIMIT,
        value=DEPOSIT_FEE_ALLOWANCE,
    )
    receipt = _confirm(ctx.l1, tx_hash, BridgingError, "Token deposit")
    logger.info("[bridge_token_l1_to_l2] Deposited %d token units: %s", amount, ctx.l1_link(tx_hash))

    l2_token = ctx.l1.call(router, L1_GATEWAY_ROUTER_ABI, "getL2ERC20Address", token)
    message = resolve_cross_domain_message(tx_hash, ctx.l1, contracts.l1_message_queue)
    logger.info(
        "[bridge_token_l1_to_l2] L2 token %s, queue index %d, L2 tx: %s",
        l2_token, message.queue_index, message.destination_tx_hash,
    )
    return {
        "approve_tx": approve_tx,
        "tx_hash": tx_hash,
        "block_number": receipt["blockNumber"],
        "amount": amount,
        "l2_token": l2_token,
        "queue_index": message.queue_index,
        "l2_tx_hash": message.destination_tx_hash,
    }


@stage("fund_l2", WalletFundingError)
def fund_l2(ctx: StageContext) -> Dict[str, Any]:
    choice = ctx.choose_l2_funding(ctx)
    if choice not in L2_FUNDING_CHOICES:
        raise ConfigurationError(f"Unknown L2 funding strategy {choice!r}")
    if choice == "bridge":
        logger.info("[fund_l2] Waiting for L1 -> L2 bridge to complete")
        return {"strategy": "bridge", "amount": 0, "tx_hash": None}
    if choice == "funder":
        if ctx.funder is None:
            raise WalletFundingError("No funder key available for direct L2 funding")
        return _fund(ctx, ctx.l2, ctx.funder, L2_FUNDING_AMOUNT)
    return _fund(ctx, ctx.l2, ctx.manual_funding, L2_FUNDING_AMOUNT)


@stage("await_native_deposit_l2", BridgingError)
def await_native_deposit_l2(ctx: StageContext) -> Dict[str, Any]:
    if ctx.artifact("fund_l2", "strategy") != "bridge":
        logger.info("[await_native_deposit_l2] L2 funded directly, not waiting for the deposit")
        return {"skipped": True}
    l2_tx_hash = ctx.artifact("bridge_native_l1_to_l2", "l2_tx_hash")
    queue_index = ctx.artifact("bridge_native_l1_to_l2", "queue_index")
    l1_block = ctx.artifact("bridge_native_l1_to_l2", "block_number")
    receipt = _await_l2_message(ctx, l2_tx_hash, queue_index, l1_block)
    logger.info("[await_native_deposit_l2] Deposit executed on L2: %s", ctx.l2_link(l2_tx_hash))
    return {"skipped": False, "l2_tx_hash": l2_tx_hash, "block_number": receipt["blockNumber"]}


@stage("bridge_native_l2_to_l1", BridgingError)
def bridge_native_l2_to_l1(ctx: StageContext) -> Dict[str, Any]:
    tx_hash = ctx.l2.transact(
        ctx.account,
        ctx.config.contracts.l2_eth_gateway,
        L2_ETH_GATEWAY_ABI,
        "withdrawETH",
        WITHDRAW_AMOUNT,
        WITHDRAW_GAS_LIMIT,
        value=WITHDRAW_AMOUNT,
    )
    _confirm(ctx.l2, tx_hash, BridgingError, "Withdrawal")
    logger.info("[bridge_native_l2_to_l1] Withdrew %s: %s", _eth(WITHDRAW_AMOUNT), ctx.l2_link(tx_hash))
    return {"tx_hash": tx_hash, "amount": WITHDRAW_AMOUNT}


@stage("deploy_token_l2", DeploymentError)
def deploy_token_l2(ctx: StageContext) -> Dict[str, Any]:
    tx_hash, token = _deploy_token(ctx, ctx.l2)
    logger.info("[deploy_token_l2] Token deployed at %s (%s)", token, ctx.l2_link(tx_hash))
    return {"tx_hash": tx_hash, "token": token}


@stage("await_token_deposit_l2", BridgingError)
def await_token_deposit_l2(ctx: StageContext) -> Dict[str, Any]:
    l2_tx_hash = ctx.artifact("bridge_token_l1_to_l2", "l2_tx_hash")
    queue_index = ctx.artifact("bridge_token_l1_to_l2", "queue_index")
    l1_block = ctx.artifact("bridge_token_l1_to_l2", "block_number")
    receipt = _await_l2_message(ctx, l2_tx_hash, queue_index, l1_block)
    logger.info("[await_token_deposit_l2] Token deposit executed on L2: %s", ctx.l2_link(l2_tx_hash))
    return {"l2_tx_hash": l2_tx_hash, "block_number": receipt["blockNumber"]}


@stage("bridge_token_l2_to_l1", BridgingError)
def bridge_token_l2_to_l1(ctx: StageContext) -> Dict[str, Any]:
    l2_token = ctx.artifact("bridge_token_l1_to_l2", "l2_token")
    router = ctx.config.contracts.l2_gateway_router

    balance = _await_token_balance(ctx, ctx.l2, l2_token)
    amount = balance // 2
    approve_tx = _approve(ctx, ctx.l2, l2_token, router, amount)

    tx_hash = ctx.l2.transact(
        ctx.account,
        router,
        L2_GATEWAY_ROUTER_ABI,
        "withdrawERC20",
        l2_token,
        amount,
        WITHDRAW_GAS_LIMIT,
    )
    _confirm(ctx.l2, tx_hash, BridgingError, "Token withdrawal")
    logger.info("[bridge_token_l2_to_l1] Withdrew %d token units: %s", amount, ctx.l2_link(tx_hash))
    return {"approve_tx": approve_tx, "tx_hash": tx_hash, "amount": amount}


def _claim(ctx: StageContext, withdrawal_stage: str) -> Dict[str, Any]:
    withdrawal_hash = ctx.artifact(withdrawal_stage, "tx_hash")
    tx_hash = claim_withdrawal(
        withdrawal_hash,
        ctx.account,
        ctx.indexer,
        ctx.l1,
        ctx.config.contracts.l1_messenger,
        interval=ctx.poll_interval,
        sleep=ctx.sleep,
        max_attempts=ctx.max_poll_attempts,
    )
    logger.info("[%s] Claimed on L1: %s", ctx.current_stage, ctx.l1_link(tx_hash))
    return {"withdrawal_tx": withdrawal_hash, "tx_hash": tx_hash}


@stage("claim_native_l1", BridgingError)
def claim_native_l1(ctx: StageContext) -> Dict[str, Any]:
    return _claim(ctx, "bridge_native_l2_to_l1")


@stage("claim_token_l1", BridgingError)
def claim_token_l1(ctx: StageContext) -> Dict[str, Any]:
    return _claim(ctx, "bridge_token_l2_to_l1")


def describe_identity(ctx: StageContext) -> str:
    """Explorer link to the identity, or its bare address while L1 is unreachable."""
    address = ctx.account.address
    try:
        chain_id = ctx.l1.chain_id
    except NetworkError as e:
        logger.debug("No explorer link for %s: %s", address, e)
        return address
    return address_link(address, chain_id, ctx.config.frontend.external_explorer_uri_l1 or None)
