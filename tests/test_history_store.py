"""Tests for the JSON-backed history store."""

import json

import pytest

from autopoiesis.core.schema import Turn
from autopoiesis.memory.history_store import HistoryStore


def test_missing_file_starts_empty(history_path) -> None:
    store = HistoryStore(history_path)
    assert store.turns == []
    assert store.last is None


@pytest.mark.parametrize(
    "content",
    ["{not json", '{"role": "user"}', '[{"role": "robot", "content": "x"}]'],
)
def test_corrupt_file_starts_empty(history_path, content: str) -> None:
    history_path.write_text(content, encoding="utf-8")
    assert HistoryStore(history_path).turns == []


def test_save_then_load_round_trips(history_path) -> None:
    store = HistoryStore(history_path)
    store.append("user", "hello")
    store.append("assistant", 'multi\nline "quoted" ✓')
    store.save()

    reloaded = HistoryStore(history_path)
    assert reloaded.turns == store.turns
    assert reloaded.last == Turn(role="assistant", content='multi\nline "quoted" ✓')


def test_save_overwrites_whole_file(history_path) -> None:
    store = HistoryStore(history_path)
    store.append("user", "one")
    store.save()
    store.append("assistant", "two")
    store.save()

    data = json.loads(history_path.read_text(encoding="utf-8"))
    assert data == [
        {"role": "user", "content": "one"},
        {"role": "assistant", "content": "two"},
    ]
    assert [p.name for p in history_path.parent.iterdir() if p.suffix == ".tmp"] == []


def test_system_turns_are_not_persisted(history_path) -> None:
    with pytest.raises(ValueError):
        HistoryStore(history_path).append("system", "instructions")


def test_clear(history_path) -> None:
    store = HistoryStore(history_path)
    store.append("user", "bye")
    store.save()
    store.clear()
    assert HistoryStore(history_path).turns == []


def test_turns_returns_a_copy(history_path) -> None:
    store = HistoryStore(history_path)
    store.turns.append(Turn(role="user", content="sneaky"))
    assert len(store) == 0
