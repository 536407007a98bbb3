"""
Relaunch-and-resume half of the restart protocol.

The supervisor runs the chat process as a child and starts it again whenever it exits with the
restart exit code.  Any other exit code ends supervision with that code.
"""

import logging
import subprocess
import sys
import time
from typing import (
    Callable,
    List,
    Sequence,
)

from autopoiesis.config import settings

logger = logging.getLogger(__name__)


def child_command(extra_args: Sequence[str] = ()) -> List[str]:
    """Command line that starts the agent in chat mode with the current interpreter."""
    return [sys.executable, "-m", "autopoiesis.main", "--mode", "chat", *extra_args]


def supervise(
    cmd: Sequence[str],
    restart_code: int | None = None,
    max_restarts: int | None = None,
    backoff: float | None = None,
    run: Callable[[Sequence[str]], int] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Run *cmd* until it exits with anything other than *restart_code*.

    Parameters
    ----------
    cmd:
        Child command line.
    restart_code:
        Exit code that requests a relaunch.  Defaults to ``settings.RESTART_EXIT_CODE``.
    max_restarts:
        Stop after this many relaunches (0 means unlimited).  Defaults to
        ``settings.SUPERVISOR_MAX_RESTARTS``.
    backoff:
        Seconds to wait before each relaunch.  Defaults to ``settings.SUPERVISOR_BACKOFF``.
    run:
        Starts the child and returns its exit code; ``subprocess.call`` by default.

    Returns
    -------
    int
        The child's final exit code, or 1 if the restart limit was exceeded.
    """
    if restart_code is None:
        restart_code = settings.RESTART_EXIT_CODE
    if max_restarts is None:
        max_restarts = settings.SUPERVISOR_MAX_RESTARTS
    if backoff is None:
        backoff = settings.SUPERVISOR_BACKOFF
    if run is None:
        run = subprocess.call

    restarts = 0
    while True:
        logger.debug("Launching child: %s", list(cmd))
        rc = run(cmd)
        if rc != restart_code:
            logger.info("Child exited with code %d; not restarting", rc)
            return rc

        restarts += 1
        if max_restarts and restarts > max_restarts:
            logger.error("Max restarts exceeded (%d); giving up", max_restarts)
            return 1

        logger.info("Child requested a restart (restart_count=%d)", restarts)
        if backoff:
            sleep(backoff)
