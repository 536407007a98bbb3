"""Persist-and-exit half of the restart protocol."""

import logging
import sys
from typing import (
    Callable,
    NoReturn,
)

from autopoiesis.config import settings
from autopoiesis.memory.history_store import HistoryStore

logger = logging.getLogger(__name__)


class RestartController:
    """
    Flushes the history and ends the process with the restart exit code.

    Relaunching is left to a supervisor (see :mod:`autopoiesis.agent.supervisor`); on the next start
    the driver resumes from the persisted history.
    """

    def __init__(
        self,
        history: HistoryStore,
        exit_code: int | None = None,
        exit_fn: Callable[[int], NoReturn] = sys.exit,
    ):
        self.history = history
        self.exit_code = settings.RESTART_EXIT_CODE if exit_code is None else exit_code
        self._exit = exit_fn

    def restart(self, pending_response: str | None = None) -> NoReturn:
        """Save history synchronously, then terminate."""
        self.history.save()
        if pending_response:
            logger.info("Restarting before delivery; pending response was: %s", pending_response)
        logger.info("Restarting to load new tools (exit code %d)", self.exit_code)
        self._exit(self.exit_code)
