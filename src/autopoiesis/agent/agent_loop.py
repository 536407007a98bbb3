"""Main conversation loop for Autopoiesis."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import (
    Awaitable,
    Dict,
    Tuple,
)

from autopoiesis.agent.orchestrator import Orchestrator
from autopoiesis.agent.providers import (
    BaseProvider,
    load_provider,
)
from autopoiesis.agent.restart import RestartController
from autopoiesis.agent.self_rewrite import (
    RewriteTargetError,
    SelfRewriteCoordinator,
)
from autopoiesis.agent.tool_executor import run_action
from autopoiesis.common import (
    AnsiColors,
    colored_print,
)
from autopoiesis.config import settings
from autopoiesis.core.schema import (
    Decision,
    ToolResult,
)
from autopoiesis.memory.history_store import HistoryStore
from autopoiesis.tools import ToolRegistry

logger = logging.getLogger(__name__)


class DriverState(enum.Enum):
    """Where the driver is within one conversational turn."""

    IDLE = "idle"
    AWAITING_FIRST_DECISION = "awaiting_first_decision"
    EXECUTING_TOOLS = "executing_tools"
    REWRITING = "rewriting"
    RESTARTING = "restarting"
    RESPONDING = "responding"


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------
class ConversationDriver:
    """
    Runs one user turn through the orchestrator, the tools, and (if new tools were proposed) the
    self-rewrite and restart steps.
    """

    def __init__(
        self,
        history: HistoryStore,
        registry: ToolRegistry,
        orchestrator: Orchestrator,
        rewriter: SelfRewriteCoordinator,
        restarter: RestartController,
    ):
        self.history = history
        self.registry = registry
        self.orchestrator = orchestrator
        self.rewriter = rewriter
        self.restarter = restarter
        self.state = DriverState.IDLE

    async def process_user_input(self, text: str) -> str:
        """Record *text* as a user turn and drive it to a reply."""
        logger.debug("Processing user input: %s", text)
        prior_turns = self.history.turns
        self.history.append("user", text)
        return await self._run_turn(text, prior_turns)

    async def resume(self) -> str | None:
        """
        Replay the last user turn if the previous process stopped before answering it.

        The user turn is already in the history, so it is not appended a second time.
        """
        last = self.history.last
        if last is None or last.role != "user":
            return None
        logger.info("Resuming unanswered user turn: %s", last.content)
        return await self._run_turn(last.content, self.history.turns[:-1])

    async def execute_actions(self, decision: Decision) -> Dict[str, ToolResult]:
        """Run the requested actions in order; results are keyed by tool name."""
        tool_results: Dict[str, ToolResult] = {}
        for action in decision.actions:
            tool_results[action.tool] = await run_action(self.registry, action.tool, action.args)
        logger.debug("Tool execution results: %s", tool_results)
        return tool_results

    async def _run_turn(self, text: str, prior_turns: list) -> str:
        self.state = DriverState.AWAITING_FIRST_DECISION
        decision = await self.orchestrator.decide(text, prior_turns)
        logger.debug("First decision: %s", decision)

        if decision.actions:
            self.state = DriverState.EXECUTING_TOOLS
            logger.info(
                "Executing %d action(s): %s",
                len(decision.actions),
                [action.tool for action in decision.actions],
            )
            tool_results = await self.execute_actions(decision)
            decision = await self.orchestrator.decide(text, prior_turns, tool_results)
            logger.debug("Refreshed decision: %s", decision)

        if decision.new_tools:
            self.state = DriverState.REWRITING
            self.rewriter.commit(decision.new_tools)
            self.state = DriverState.RESTARTING
            self.restarter.restart(pending_response=decision.response)

        self.state = DriverState.RESPONDING
        self.history.append("assistant", decision.response)
        self.history.save()
        self.state = DriverState.IDLE
        return decision.response


def create_driver(provider: BaseProvider | None = None) -> ConversationDriver:
    """Wire a driver from ``settings``."""
    history = HistoryStore(settings.history_path)
    registry = ToolRegistry.from_seed(settings.SEED_PATH)
    logger.debug("Available tools: %s", registry.names())
    return ConversationDriver(
        history=history,
        registry=registry,
        orchestrator=Orchestrator(provider or load_provider(), registry),
        rewriter=SelfRewriteCoordinator(registry, settings.SEED_PATH),
        restarter=RestartController(history),
    )


# ---------------------------------------------------------------------------
# CLI front end
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


async def _answer(driver: ConversationDriver, turn: Awaitable[str | None]) -> None:
    """Print the reply to *turn*; an unexpected error is reported and the loop carries on."""
    try:
        reply = await turn
    except RewriteTargetError:
        raise
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Error while processing user input")
        driver.state = DriverState.IDLE
        colored_print(f"Error: {exc}", AnsiColors.RED)
        return
    colored_print(f"AI: {reply}", AnsiColors.GREEN)


async def chat(driver: ConversationDriver) -> None:
    """Resume any unanswered turn, then answer stdin lines until the user quits."""
    colored_print("🧬 Agent started - type 'exit' or 'quit' to leave.", AnsiColors.YELLOW)

    last = driver.history.last
    if last is not None and last.role == "user":
        colored_print("Continuing previous conversation...", AnsiColors.BLUE)
        colored_print(f"Last user message: {last.content}", AnsiColors.BLUE)
        await _answer(driver, driver.resume())

    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if not user_msg:
            continue
        if user_msg.lower() in {"exit", "quit"}:
            break

        await _answer(driver, driver.process_user_input(user_msg))


def run_cli() -> None:
    """Run the agent loop in CLI mode."""
    asyncio.run(chat(create_driver()))


if __name__ == "__main__":
    run_cli()
