"""Durable, append-only log of conversation turns kept as one JSON array on disk."""

import logging
import os
import tempfile
from pathlib import Path
from typing import List

from pydantic import (
    TypeAdapter,
    ValidationError,
)

from autopoiesis.core.schema import Turn

logger = logging.getLogger(__name__)

_turn_list = TypeAdapter(List[Turn])


def atomic_write_text(path: Path, text: str) -> None:
    """Write *text* to a temp file next to *path*, then swap it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        Path(tmp_path).unlink(missing_ok=True)
        raise


class HistoryStore:
    """
    Conversation history backed by a JSON file.

    The file is read in full on construction and overwritten in full on every :meth:`save`.
    A missing or unreadable file is treated as an empty history.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._turns: List[Turn] = []
        self.load()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def load(self) -> None:
        """Replace the in-memory turns with the file contents."""
        try:
            self._turns = _turn_list.validate_json(self.path.read_bytes())
        except FileNotFoundError:
            logger.info("No history file found at %s, starting fresh", self.path)
            self._turns = []
        except (OSError, ValidationError) as exc:
            logger.warning("Could not load history from %s (%s), starting fresh", self.path, exc)
            self._turns = []

    def save(self) -> None:
        """Persist every turn, replacing the previous file."""
        atomic_write_text(self.path, _turn_list.dump_json(self._turns, indent=2).decode("utf-8"))
        logger.debug("Saved %d turns to %s", len(self._turns), self.path)

    def append(self, role: str, content: str) -> Turn:
        """Record a new user or assistant turn."""
        if role not in ("user", "assistant"):
            raise ValueError(f"Only user and assistant turns are persisted, got {role!r}")
        turn = Turn(role=role, content=content)  # type: ignore[arg-type]
        self._turns.append(turn)
        return turn

    def clear(self) -> None:
        """Drop every turn and persist the empty history."""
        self._turns = []
        self.save()

    @property
    def turns(self) -> List[Turn]:
        """A copy of the turns in insertion order."""
        return list(self._turns)

    @property
    def last(self) -> Turn | None:
        """The most recent turn, if any."""
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)
