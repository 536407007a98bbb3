"""
Autopoiesis entry point.

This file handles startup concerns (arg-parsing, env setup, logging) and launches either the chat
loop or the supervisor that relaunches it after every self-rewrite.
"""

import argparse
import logging
import sys
from pathlib import Path

from autopoiesis.agent.self_rewrite import RewriteTargetError
from autopoiesis.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Keep HTTP client chatter out of the conversation
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the self-extending Autopoiesis agent")
    parser.add_argument(
        "--mode",
        choices=["supervise", "chat"],
        type=str.lower,
        default="supervise",
        help="Run under a restarting supervisor, or run a single chat process (default: supervise)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default="debug" if settings.DEBUG else settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--provider",
        type=str.lower,
        default=settings.PROVIDER,
        help="Completion provider name (default from env: %(default)s)",
    )
    parser.add_argument(
        "--reset-history",
        action="store_true",
        help="Clear the conversation history before starting",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the Autopoiesis application.

    In ``supervise`` mode the chat loop runs as a child process and is relaunched whenever it
    exits to pick up newly written tools.  ``chat`` mode runs the loop in this process.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args = parser.parse_args(argv)

    # Override settings with command-line arguments
    settings.LOG_LEVEL = args.log_level
    settings.PROVIDER = args.provider

    _init_logging(settings.LOG_LEVEL)
    logger.debug("Settings: %s", settings.model_dump())

    if args.reset_history:
        # Lazy import to keep supervise mode light
        from autopoiesis.memory.history_store import (  # pylint: disable=import-outside-toplevel
            HistoryStore,
        )

        HistoryStore(settings.history_path).clear()
        logger.info("Cleared history at %s", settings.history_path)

    if args.mode == "supervise":
        from autopoiesis.agent.supervisor import (  # pylint: disable=import-outside-toplevel
            child_command,
            supervise,
        )

        child_args = ["--log-level", args.log_level, "--provider", args.provider]
        sys.exit(supervise(child_command(child_args)))

    if not Path(settings.SEED_PATH).is_file():
        logger.error("Tool seed module not found: %s", settings.SEED_PATH)
        sys.exit(1)

    from autopoiesis.agent.agent_loop import run_cli  # pylint: disable=import-outside-toplevel

    try:
        run_cli()
    except RewriteTargetError as exc:
        logger.critical("Self-rewrite aborted, persisted tools left unchanged: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
