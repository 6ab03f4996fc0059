"""
Checkpoint Store

Persists `PipelineState` as JSON after every stage so an interrupted run can
be resumed. Writes go to a temp file in the same directory which is fsynced
and then renamed over the checkpoint, so a crash never leaves a torn file.
"""

import json
import os
import time
from pathlib import Path
from typing import Optional, Union

from ..exceptions import CorruptStateError
from ..logger import get_logger
from .state import PipelineState

logger = get_logger(__name__)


class CheckpointStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"CheckpointStore({str(self.path)!r})"

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[PipelineState]:
        """
        Returns:
            The stored state, or None when no checkpoint exists.

        Raises:
            CorruptStateError: the file cannot be parsed into a state
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorruptStateError(f"{self.path} is not valid JSON: {e}") from e
        state = PipelineState.from_dict(data)
        logger.info("Loaded checkpoint %s (next stage: %s)", self.path, state.next_stage() or "none")
        return state

    def save(self, state: PipelineState) -> None:
        payload = json.dumps(state.to_dict(), indent=2)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        # may hold a generated private key
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self.path)
        logger.debug("Saved checkpoint %s", self.path)

    def archive(self) -> Optional[Path]:
        """
        Move an existing checkpoint aside as `<name>.<UTC timestamp>.bak`.

        Returns:
            The backup path, or None when there was nothing to archive.
        """
        if not self.path.exists():
            return None
        stamp = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
        backup = self.path.with_name(f"{self.path.name}.{stamp}.bak")
        counter = 1
        while backup.exists():
            backup = self.path.with_name(f"{self.path.name}.{stamp}.{counter}.bak")
            counter += 1
        os.replace(self.path, backup)
        logger.warning("Archived previous checkpoint to %s", backup)
        return backup
