"""
Pipeline state

A single `PipelineState` per run holds the test identity and one
`StageResult` per named stage. It is the only thing persisted between runs.

Integers inside artifacts are serialized as decimal strings with an `n`
suffix ("9007199254740993n") so wei amounts survive JSON readers that parse
numbers as doubles.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from eth_account import Account
from eth_utils import is_address

from ..exceptions import CorruptStateError

STATE_VERSION = 1

STAGES = (
    "generate_identity",
    "fund_l1",
    "bridge_native_l1_to_l2",
    "deploy_token_l1",
    "bridge_token_l1_to_l2",
    "fund_l2",
    "await_native_deposit_l2",
    "bridge_native_l2_to_l1",
    "deploy_token_l2",
    "await_token_deposit_l2",
    "bridge_token_l2_to_l1",
    "claim_native_l1",
    "claim_token_l1",
)

# Artifact keys every completed stage records
STAGE_ARTIFACTS = {
    "generate_identity": ("address",),
    "fund_l1": ("strategy",),
    "bridge_native_l1_to_l2": ("tx_hash", "block_number", "queue_index", "l2_tx_hash"),
    "deploy_token_l1": ("token",),
    "bridge_token_l1_to_l2": ("tx_hash", "block_number", "l2_token", "queue_index", "l2_tx_hash"),
    "fund_l2": ("strategy",),
    "await_native_deposit_l2": ("skipped",),
    "bridge_native_l2_to_l1": ("tx_hash",),
    "deploy_token_l2": ("token",),
    "await_token_deposit_l2": ("l2_tx_hash",),
    "bridge_token_l2_to_l1": ("tx_hash",),
    "claim_native_l1": ("tx_hash",),
    "claim_token_l1": ("tx_hash",),
}

_TAGGED_INT = re.compile(r"-?\d+n")
# Looks like an attempt at a tagged int ("12.5n", "1e9n") without being one
_SUSPECT_TAG = re.compile(r"-?\d[\w.+-]*n")


def stage_index(stage: str) -> int:
    try:
        return STAGES.index(stage)
    except ValueError:
        raise ValueError(f"Unknown stage: {stage}") from None


# ══════════════════════════════════════════════════════════════════════
#  TAGGED INTEGER CODEC
# ══════════════════════════════════════════════════════════════════════

def encode_value(value: Any) -> Any:
    # bool is an int subclass but stays a JSON boolean
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int):
        return f"{value}n"
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    raise TypeError(f"Cannot persist artifact of type {type(value).__name__}")


def decode_value(value: Any) -> Any:
    if isinstance(value, str):
        if _TAGGED_INT.fullmatch(value):
            return int(value[:-1])
        if _SUSPECT_TAG.fullmatch(value):
            raise CorruptStateError(f"Malformed tagged integer: {value!r}")
        return value
    if isinstance(value, float):
        raise CorruptStateError(f"Untagged floating point artifact: {value!r}")
    if isinstance(value, dict):
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


# ══════════════════════════════════════════════════════════════════════
#  MODEL
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Identity:
    """The disposable test account. `private_key` is only kept when generated."""
    address: str
    private_key: Optional[str] = None
    generated: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "private_key": self.private_key if self.generated else None,
            "generated": self.generated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        if not isinstance(data, dict) or "address" not in data or "generated" not in data:
            raise CorruptStateError("identity must have 'address' and 'generated'")
        address, generated = data["address"], data["generated"]
        if not isinstance(address, str) or not is_address(address):
            raise CorruptStateError(f"identity address {address!r} is not an address")
        if not isinstance(generated, bool):
            raise CorruptStateError(f"identity 'generated' must be a boolean, got {generated!r}")
        key = data.get("private_key")
        if key is not None and not isinstance(key, str):
            raise CorruptStateError("identity private key must be a string")
        if not generated:
            return cls(address=address, private_key=None, generated=False)

        if not key:
            raise CorruptStateError("generated identity is missing its private key")
        try:
            derived = Account.from_key(key).address
        except ValueError as e:
            raise CorruptStateError(f"identity private key is malformed: {e}") from e
        if derived.lower() != address.lower():
            raise CorruptStateError(f"identity private key does not belong to {address}")
        return cls(address=address, private_key=key, generated=True)


@dataclass
class StageResult:
    completed: bool = False
    artifacts: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineState:
    identity: Optional[Identity] = None
    stages: Dict[str, StageResult] = field(
        default_factory=lambda: {name: StageResult() for name in STAGES}
    )

    def is_completed(self, stage: str) -> bool:
        return self.stages[stage].completed

    def next_stage(self) -> Optional[str]:
        for name in STAGES:
            if not self.stages[name].completed:
                return name
        return None

    @property
    def finished(self) -> bool:
        return self.next_stage() is None

    def mark_completed(self, stage: str, artifacts: Dict[str, Any]) -> None:
        """Record a stage's artifacts. A completed stage is never overwritten."""
        stage_index(stage)
        result = self.stages[stage]
        if result.completed:
            raise ValueError(f"Stage {stage} is already completed")
        result.artifacts = dict(artifacts)
        result.completed = True

    def artifact(self, stage: str, key: str, reader: str) -> Any:
        """
        Read an artifact of `stage` on behalf of stage `reader`.

        Raises:
            ValueError: `stage` does not come strictly before `reader`, or
                has not completed yet
            KeyError: the stage did not record `key`
        """
        if stage_index(stage) >= stage_index(reader):
            raise ValueError(f"{reader} may not read artifacts of {stage}")
        result = self.stages[stage]
        if not result.completed:
            raise ValueError(f"{reader} needs {stage}, which has not completed")
        return result.artifacts[key]

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "identity": self.identity.to_dict() if self.identity else None,
            "stages": {
                name: {
                    "completed": result.completed,
                    "artifacts": encode_value(result.artifacts),
                }
                for name, result in self.stages.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PipelineState":
        """
        Raises:
            CorruptStateError: missing fields, unknown stages or malformed values
        """
        if not isinstance(data, dict):
            raise CorruptStateError("state must be a JSON object")
        for required in ("version", "identity", "stages"):
            if required not in data:
                raise CorruptStateError(f"state is missing '{required}'")
        if data["version"] != STATE_VERSION:
            raise CorruptStateError(f"unsupported state version {data['version']!r}")
        if not isinstance(data["stages"], dict):
            raise CorruptStateError("'stages' must be an object")

        state = cls()
        if data["identity"] is not None:
            state.identity = Identity.from_dict(data["identity"])

        for name, raw in data["stages"].items():
            if name not in state.stages:
                raise CorruptStateError(f"unknown stage {name!r}")
            if not isinstance(raw, dict) or not isinstance(raw.get("completed"), bool):
                raise CorruptStateError(f"stage {name!r} must carry a boolean 'completed'")
            artifacts = raw.get("artifacts", {})
            if not isinstance(artifacts, dict):
                raise CorruptStateError(f"stage {name!r} artifacts must be an object")
            if raw["completed"]:
                missing = [key for key in STAGE_ARTIFACTS[name] if key not in artifacts]
                if missing:
                    raise CorruptStateError(f"completed stage {name!r} is missing artifacts {missing}")
            state.stages[name] = StageResult(
                completed=raw["completed"],
                artifacts=decode_value(artifacts),
            )

        completed = [state.stages[n].completed for n in STAGES]
        if any(later and not earlier for earlier, later in zip(completed, completed[1:])):
            raise CorruptStateError("completed stages are not a prefix of the stage order")
        if completed[0] and state.identity is None:
            raise CorruptStateError("identity stage completed without an identity")
        return state
