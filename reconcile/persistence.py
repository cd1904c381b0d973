"""
Persistence sinks.
The session emits the full mutable state after every change. Sinks are
write-through: no read-modify-write contract is implied.
"""

from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from reconcile.schemas.snapshot import StateTuple
from reconcile.utils.logging import setup_logging


logger = setup_logging(__name__)


class PersistenceSink:
    """Receives the state tuple after every workspace change."""

    def save(self, state: StateTuple) -> None:
        raise NotImplementedError

    def load(self) -> Optional[StateTuple]:
        return None


class NullSink(PersistenceSink):
    """Discards everything. Used when no durable store is configured."""

    def save(self, state: StateTuple) -> None:
        pass


class MemorySink(PersistenceSink):
    """Keeps every emitted state in order."""

    def __init__(self):
        self.saved = []

    def save(self, state: StateTuple) -> None:
        self.saved.append(state.model_copy(deep=True))

    def load(self) -> Optional[StateTuple]:
        return self.saved[-1].model_copy(deep=True) if self.saved else None


class JsonFileSink(PersistenceSink):
    """Writes the state as JSON to a single file, replacing it each time."""

    def __init__(self, path: str):
        self.path = Path(path)

    def save(self, state: StateTuple) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
        logger.debug(f"Saved workspace state to {self.path}")

    def load(self) -> Optional[StateTuple]:
        """Last saved state, or None if there is no usable file."""
        if not self.path.exists():
            logger.info(f"No saved workspace at {self.path}. Starting fresh.")
            return None

        try:
            raw = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Saved workspace at {self.path} could not be read: {e}")
            return None

        try:
            return StateTuple.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Saved workspace at {self.path} is unreadable: {e}")
            return None
