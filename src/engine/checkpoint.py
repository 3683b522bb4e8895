"""
Checkpoint storage for the CLI host.

One JSON file per scope under <state_dir>/_checkpoints/. The position is
stored base64-encoded since positions are opaque bytes.
"""

import base64
import binascii
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class CheckpointStore:
    """
    Saves and restores the last acknowledged position of a source run.

    Usage:
        store = CheckpointStore("state")
        position, total = store.get_last_checkpoint("orders")
        store.save_checkpoint("orders", record.position, total=95)
    """

    def __init__(self, state_dir: str = "state"):
        self.state_dir = Path(state_dir)
        self._lock = threading.Lock()

    def _checkpoint_path(self, scope_key: str) -> Path:
        path = self.state_dir / "_checkpoints"
        path.mkdir(parents=True, exist_ok=True)
        return path / f"{scope_key}.json"

    def save_checkpoint(self, scope_key: str, position: bytes, total: int):
        with self._lock:
            cp = {
                "scope_key": scope_key,
                "position": base64.b64encode(bytes(position)).decode("ascii"),
                "total": total,
                "checkpoint_time": datetime.now().isoformat(),
            }
            self._checkpoint_path(scope_key).write_text(json.dumps(cp))
            logger.debug(f"Checkpoint: scope_key={scope_key}, total={total}")

    def get_last_checkpoint(self, scope_key: str) -> Tuple[Optional[bytes], int]:
        """Returns (position, total). position is None if no checkpoint."""
        path = self._checkpoint_path(scope_key)
        if not path.exists():
            return None, 0
        try:
            cp = json.loads(path.read_text())
            position = base64.b64decode(cp["position"], validate=True)
            logger.info(f"Resuming: scope_key={scope_key}, total={cp['total']}")
            return position, int(cp["total"])
        except (json.JSONDecodeError, KeyError, ValueError, binascii.Error) as e:
            logger.warning(f"Invalid checkpoint file {path}: {e}")
            return None, 0

    def clear(self, scope_key: str):
        path = self._checkpoint_path(scope_key)
        if path.exists():
            path.unlink()
            logger.info(f"Cleared checkpoint for {scope_key}")
