"""
Orchestrator

Runs the stages in their fixed order, skipping completed ones, and persists
the state after every stage.
"""

from typing import Callable, List, Optional

from eth_account import Account

from ..exceptions import ConfigurationError, CorruptStateError
from ..logger import get_logger
from .checkpoint import CheckpointStore
from .stages import STAGE_FUNCTIONS, StageContext, describe_identity
from .state import STAGES, PipelineState

logger = get_logger(__name__)


def prepare_state(store: CheckpointStore, resume: bool) -> PipelineState:
    """
    Initial state of a run.

    Fresh run: any existing checkpoint is archived. Resume: the checkpoint is
    loaded; a missing one starts a fresh run, a corrupt one is fatal.
    """
    if not resume:
        store.archive()
        return PipelineState()
    state = store.load()
    if state is None:
        logger.warning("No checkpoint at %s, starting a fresh run", store.path)
        return PipelineState()
    return state


def restore_account(ctx: StageContext) -> None:
    """Rebuild the identity's signing account from the state (resume)."""
    identity = ctx.state.identity
    if identity is None:
        return
    if identity.generated:
        account = Account.from_key(identity.private_key)
    else:
        key = ctx.operator_key or ctx.config.accounts.deployer_private_key
        if not key:
            raise ConfigurationError(
                f"Checkpoint identity {identity.address} was supplied by the operator; "
                "provide its key again with --private-key or DEPLOYER_PRIVATE_KEY"
            )
        try:
            account = Account.from_key(key)
        except ValueError as e:
            raise ConfigurationError(f"Invalid key for checkpoint identity {identity.address}: {e}") from e
    if account.address.lower() != identity.address.lower():
        raise ConfigurationError(
            f"Key does not match checkpoint identity {identity.address} (got {account.address})"
        )
    ctx.account = account


class Orchestrator:
    """
    Args:
        ctx: Stage context; `ctx.state` is the state being advanced.
        store: Where the state is persisted after each stage.
        on_stage: Optional callback `(stage, artifacts)` after each persisted stage.
    """

    def __init__(
        self,
        ctx: StageContext,
        store: CheckpointStore,
        on_stage: Optional[Callable[[str, dict], None]] = None,
    ):
        if tuple(STAGE_FUNCTIONS) != STAGES:
            raise CorruptStateError("stage registry does not match the stage order")
        self.ctx = ctx
        self.store = store
        self.on_stage = on_stage

    @property
    def state(self) -> PipelineState:
        return self.ctx.state

    def pending_stages(self) -> List[str]:
        return [name for name in STAGES if not self.state.is_completed(name)]

    def run(self) -> PipelineState:
        """
        Execute every pending stage.

        Raises:
            E2EException subclass of the failing stage; earlier stages stay
            completed on disk.
        """
        restore_account(self.ctx)
        pending = self.pending_stages()
        if not pending:
            logger.info("All stages already completed")
            return self.state
        if len(pending) < len(STAGES):
            logger.info("Resuming at stage %s", pending[0])

        for name in pending:
            fn, _error = STAGE_FUNCTIONS[name]
            self.ctx.current_stage = name
            logger.info("[%s] started", name)
            artifacts = fn(self.ctx)
            self.state.mark_completed(name, artifacts)
            self.store.save(self.state)
            logger.info("[%s] completed", name)
            if name == "generate_identity":
                logger.info("Test identity: %s", describe_identity(self.ctx))
            if self.on_stage:
                self.on_stage(name, artifacts)

        self.ctx.current_stage = ""
        logger.info("E2E test completed successfully")
        return self.state
