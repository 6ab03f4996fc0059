"""
bridge-e2e CLI

Command-line entry point for the bridge end-to-end test.

Usage:
    bridge-e2e e2e [--config FILE] [--contracts FILE] [--pod] [--private-key KEY]
                   [--manual-fund] [--skip-wallet-generation] [--resume]
                   [--l2-funding bridge|funder|manual] [--state-file FILE]
    bridge-e2e withdrawals <address> [--unclaimed]
"""

from typing import Callable, Optional

import click
from eth_account import Account

from .. import __version__
from ..chain.connector import ChainConnector
from ..config import E2EConfig, load_config
from ..constants import E2E_STATE_FILE, L2_FUNDING_AMOUNT
from ..exceptions import (
    BridgingError,
    ConfigurationError,
    CorruptStateError,
    DeploymentError,
    E2EException,
    NetworkError,
    WalletFundingError,
)
from ..indexer import WithdrawalIndexClient
from ..logger import configure_logging, get_logger
from ..pipeline import (
    L2_FUNDING_CHOICES,
    CheckpointStore,
    DirectTransferFunding,
    ManualFunding,
    Orchestrator,
    PipelineState,
    StageContext,
    prepare_state,
)

logger = get_logger(__name__)

ERROR_MESSAGES = (
    (WalletFundingError, "E2E Test failed due to wallet funding issues"),
    (BridgingError, "E2E Test failed due to bridging issues"),
    (DeploymentError, "E2E Test failed due to contract deployment issues"),
    (ConfigurationError, "E2E Test failed due to configuration issues"),
    (CorruptStateError, "E2E Test failed due to a corrupt checkpoint"),
    (NetworkError, "E2E Test failed due to network issues"),
)


def error_message(error: E2EException) -> str:
    for kind, prefix in ERROR_MESSAGES:
        if isinstance(error, kind):
            return f"{prefix}: {error}"
    return f"E2E Test failed: {error}"


def select_funder(
    config: E2EConfig,
    private_key: Optional[str],
    manual_fund: bool,
    skip_wallet_generation: bool,
) -> Optional[DirectTransferFunding]:
    """
    Account that pays for funding.

    `--private-key` is the funder unless wallet generation is skipped (then it
    is the identity). Otherwise the deployer pays unless manual funding was
    requested.
    """
    if skip_wallet_generation:
        return None
    if private_key:
        return DirectTransferFunding(Account.from_key(private_key))
    if config.accounts.deployer_private_key and not manual_fund:
        logger.info("No funding source given. Using DEPLOYER_PRIVATE_KEY.")
        return DirectTransferFunding(Account.from_key(config.accounts.deployer_private_key))
    logger.info("No funding key found or provided. Will prompt to fund the L1 address manually.")
    return None


def identity_is_operator(state: PipelineState, skip_wallet_generation: bool) -> bool:
    """
    Whether `--private-key` names the test identity: with
    `--skip-wallet-generation`, and when resuming a run whose identity the
    operator supplied.
    """
    if skip_wallet_generation:
        return True
    return state.identity is not None and not state.identity.generated


def l2_funding_chooser(preselected: Optional[str]) -> Callable[[StageContext], str]:
    """Chooser invoked by the fund_l2 stage; prompts unless `--l2-funding` was given."""
    def choose(ctx: StageContext) -> str:
        funder_ok = ctx.funder is not None and ctx.funder.can_cover(ctx.l2, L2_FUNDING_AMOUNT)
        if preselected:
            if preselected == "funder" and not funder_ok:
                raise WalletFundingError("--l2-funding funder needs a funder key with enough L2 balance")
            return preselected
        choices = [c for c in L2_FUNDING_CHOICES if c != "funder" or funder_ok]
        return click.prompt(
            "Wait for Bridge to complete or directly fund L2?",
            type=click.Choice(choices),
            default="bridge",
        )
    return choose


@click.group()
@click.version_option(version=__version__, prog_name="bridge-e2e")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ... (default: LOG_LEVEL)")
def cli(log_level: Optional[str]):
    """Bridge end-to-end tester for L1/L2 rollup deployments."""
    if log_level:
        configure_logging(log_level=log_level)


@cli.command("e2e")
@click.option("--config", "-c", "config_path", default=None,
              help="Path to config.toml (default: E2E_CONFIG, ./config.toml)")
@click.option("--contracts", "-t", "contracts_path", default=None,
              help="Path to config-contracts.toml (default: E2E_CONTRACTS_CONFIG, ./config-contracts.toml)")
@click.option("--pod", "-p", is_flag=True, help="Running inside the cluster: use internal RPC endpoints")
@click.option("--private-key", "-k", default=None,
              help="Funder key (the identity key with --skip-wallet-generation, or when resuming such a run)")
@click.option("--manual-fund", "-m", is_flag=True, help="Fund the test wallet manually")
@click.option("--skip-wallet-generation", "-s", is_flag=True,
              help="Use --private-key or DEPLOYER_PRIVATE_KEY as the test identity")
@click.option("--resume", "-r", is_flag=True, help="Resume from the checkpoint file")
@click.option("--l2-funding", type=click.Choice(L2_FUNDING_CHOICES), default=None,
              help="How to fund L2 (prompted when omitted)")
@click.option("--state-file", default=None, help="Checkpoint file (default: E2E_STATE_FILE)")
def e2e_cmd(
    config_path: Optional[str],
    contracts_path: Optional[str],
    pod: bool,
    private_key: Optional[str],
    manual_fund: bool,
    skip_wallet_generation: bool,
    resume: bool,
    l2_funding: Optional[str],
    state_file: Optional[str],
):
    """Run the end-to-end bridge test.

    Examples:

        bridge-e2e e2e -c ./config.toml -t ./config-contracts.toml

        bridge-e2e e2e --resume --l2-funding bridge
    """
    indexer = None
    try:
        config = load_config(config_path, contracts_path, pod=pod)
        store = CheckpointStore(state_file or str(E2E_STATE_FILE))
        state = prepare_state(store, resume)

        operator_identity = identity_is_operator(state, skip_wallet_generation)
        funder = select_funder(config, private_key, manual_fund, operator_identity)
        manual = ManualFunding(max_attempts=config.e2e.attempts_bound)
        indexer = WithdrawalIndexClient(config.frontend.bridge_api_uri)
        ctx = StageContext(
            config=config,
            l1=ChainConnector(config.l1_rpc_url, "L1", receipt_timeout=config.e2e.receipt_timeout),
            l2=ChainConnector(config.l2_rpc_url, "L2", receipt_timeout=config.e2e.receipt_timeout),
            indexer=indexer,
            state=state,
            l1_funding=funder if funder and not manual_fund else manual,
            manual_funding=manual,
            funder=funder,
            choose_l2_funding=l2_funding_chooser(l2_funding),
            skip_wallet_generation=operator_identity,
            operator_key=private_key if operator_identity else None,
        )
        Orchestrator(ctx, store).run()
    except E2EException as e:
        raise click.ClickException(error_message(e))
    except KeyboardInterrupt:
        click.echo(click.style("\nInterrupted. Re-run with --resume to continue.", fg="yellow"))
        raise SystemExit(130)
    finally:
        if indexer is not None:
            indexer.close()

    click.echo(click.style("✓ E2E Test completed successfully", fg="green"))


@cli.command("withdrawals")
@click.argument("address")
@click.option("--config", "-c", "config_path", default=None)
@click.option("--contracts", "-t", "contracts_path", default=None)
@click.option("--unclaimed", is_flag=True, help="Only list unclaimed withdrawals")
def withdrawals_cmd(address: str, config_path: Optional[str], contracts_path: Optional[str], unclaimed: bool):
    """List L2 -> L1 withdrawals of ADDRESS known to the bridge API."""
    try:
        config = load_config(config_path, contracts_path)
        indexer = WithdrawalIndexClient(config.frontend.bridge_api_uri)
        try:
            records = indexer.unclaimed_withdrawals(address) if unclaimed else indexer.withdrawals(address)
        finally:
            indexer.close()
    except E2EException as e:
        raise click.ClickException(str(e))

    if not records:
        click.echo("No withdrawals found.")
        return

    for record in records:
        if record.claimed:
            status = click.style(f"claimed in {record.counterpart_chain_tx.hash}", fg="green")
        elif record.claim_info and record.claim_info.claimable:
            status = click.style("claimable", fg="yellow")
        else:
            status = click.style("pending", fg="cyan")
        click.echo(f"{record.hash}  block {record.block_number}  {status}")


def main():
    cli()


if __name__ == "__main__":
    main()
