"""
The checkpointed e2e pipeline: state model, checkpoint store, funding
strategies, withdrawal claims, stage functions and the orchestrator.
"""

from .checkpoint import CheckpointStore
from .funding import DirectTransferFunding, FundingStrategy, ManualFunding
from .orchestrator import Orchestrator, prepare_state, restore_account
from .stages import L2_FUNDING_CHOICES, STAGE_FUNCTIONS, StageContext
from .state import STAGES, Identity, PipelineState, StageResult

__all__ = [
    "CheckpointStore",
    "FundingStrategy",
    "DirectTransferFunding",
    "ManualFunding",
    "Orchestrator",
    "prepare_state",
    "restore_account",
    "StageContext",
    "STAGE_FUNCTIONS",
    "L2_FUNDING_CHOICES",
    "STAGES",
    "Identity",
    "PipelineState",
    "StageResult",
]
