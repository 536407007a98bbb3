"""Shared fixtures: an isolated seed module, a scripted provider and a fully wired driver."""

import json
import shutil
from pathlib import Path
from typing import (
    Any,
    List,
    Sequence,
)

import pytest

import autopoiesis.tools as tools_pkg
from autopoiesis.agent.agent_loop import ConversationDriver
from autopoiesis.agent.orchestrator import Orchestrator
from autopoiesis.agent.providers import BaseProvider
from autopoiesis.agent.restart import RestartController
from autopoiesis.agent.self_rewrite import SelfRewriteCoordinator
from autopoiesis.config import settings
from autopoiesis.core.schema import Turn
from autopoiesis.memory.history_store import HistoryStore
from autopoiesis.tools import ToolRegistry

PACKAGED_SEED = Path(tools_pkg.__file__).with_name("seed.py")
RESTART_CODE = 3


class ScriptedProvider(BaseProvider):
    """Replays canned completions in order and records every prompt it receives."""

    def __init__(self, *replies: Any):
        self.replies: List[Any] = list(replies)
        self.calls: List[List[Turn]] = []

    async def complete(self, messages: Sequence[Turn]) -> str:
        self.calls.append(list(messages))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)


def decision(response: str, actions: list | None = None, new_tools: list | None = None) -> dict:
    """A well-formed Decision payload."""
    return {
        "reasoning": "test",
        "actions": actions or [],
        "newTools": new_tools or [],
        "response": response,
    }


@pytest.fixture
def seed_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A private copy of the packaged seed module, wired into ``settings.SEED_PATH``."""
    dest = tmp_path / "seed.py"
    shutil.copyfile(PACKAGED_SEED, dest)
    monkeypatch.setattr(settings, "SEED_PATH", str(dest))
    return dest


@pytest.fixture
def history_path(tmp_path: Path) -> Path:
    return tmp_path / "history.json"


@pytest.fixture
def make_driver(seed_file: Path, history_path: Path):
    """Factory building a driver the way ``create_driver`` does, around a given provider."""

    def _make(provider: BaseProvider) -> ConversationDriver:
        history = HistoryStore(history_path)
        registry = ToolRegistry.from_seed(seed_file)
        return ConversationDriver(
            history=history,
            registry=registry,
            orchestrator=Orchestrator(provider, registry),
            rewriter=SelfRewriteCoordinator(registry, seed_file),
            restarter=RestartController(history, exit_code=RESTART_CODE),
        )

    return _make
