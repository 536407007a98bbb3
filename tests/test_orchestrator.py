"""Tests for prompt construction and decision parsing."""

import asyncio
import json
import logging

import pytest
from conftest import (
    ScriptedProvider,
    decision,
)

from autopoiesis.agent.orchestrator import (
    FALLBACK_DECISION,
    DecisionParseError,
    Orchestrator,
    parse_decision,
)
from autopoiesis.core.schema import (
    ToolResult,
    ToolSpec,
    Turn,
)
from autopoiesis.tools import ToolRegistry


def _registry() -> ToolRegistry:
    return ToolRegistry(
        [ToolSpec(name="list_files", description="Lists files", implementation="return 'hidden'")]
    )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------
def test_parse_plain_json() -> None:
    parsed = parse_decision(json.dumps(decision("hi there")))
    assert parsed.response == "hi there"
    assert parsed.actions == [] and parsed.new_tools == []


def test_parse_strips_code_fences_and_prose() -> None:
    """Fenced JSON surrounded by prose is still extracted."""

    raw = "Sure! Here you go:\n```json\n" + json.dumps(decision("fenced")) + "\n```\nThanks."
    assert parse_decision(raw).response == "fenced"


def test_parse_handles_braces_inside_strings() -> None:
    payload = decision(
        "ok",
        new_tools=[{"name": "brace", "description": "}{", "implementation": "return '}'"}],
    )
    parsed = parse_decision("```\n" + json.dumps(payload) + "\n```")
    assert parsed.new_tools[0].implementation == "return '}'"


def test_parse_actions_and_new_tools_alias() -> None:
    payload = decision(
        "ok",
        actions=[{"tool": "list_files", "args": []}, {"tool": "shout", "args": ["hi", 2]}],
        new_tools=[{"name": "shout", "description": "Upper", "implementation": "return arg0"}],
    )
    parsed = parse_decision(json.dumps(payload))
    assert [a.tool for a in parsed.actions] == ["list_files", "shout"]
    assert parsed.actions[1].args == ["hi", 2]
    assert parsed.new_tools[0].name == "shout"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not json at all",
        '{"reasoning": "x", "actions": [], "response": "missing newTools"}',
        '{"reasoning": "x", "actions": "nope", "newTools": [], "response": "r"}',
        '{"reasoning": "x", "actions": [], "newTools": []}',
        '{"reasoning": "x", "actions": [], "newTools": [], "response": "r"',
    ],
)
def test_parse_rejects_malformed(raw: str) -> None:
    with pytest.raises(DecisionParseError):
        parse_decision(raw)


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------
def test_build_messages_order_without_results() -> None:
    orchestrator = Orchestrator(ScriptedProvider(), _registry())
    prior = [Turn(role="user", content="a"), Turn(role="assistant", content="b")]

    messages = orchestrator.build_messages("now", prior)

    assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1].content == "now"
    assert "list_files: Lists files" in messages[0].content
    assert "hidden" not in messages[0].content
    assert '"newTools"' in messages[0].content


def test_build_messages_with_results() -> None:
    orchestrator = Orchestrator(ScriptedProvider(), _registry())
    results = {
        "list_files": ToolResult.ok(["a.txt"]),
        "gone": ToolResult.fail("Tool 'gone' not found"),
    }

    messages = orchestrator.build_messages("now", [], results)

    assert [m.role for m in messages] == ["system", "user", "system"]
    tail = messages[-1].content
    assert tail.startswith("Tool execution results:")
    assert '"a.txt"' in tail
    assert "Tool 'gone' not found" in tail
    assert "valid JSON object" in tail


# ---------------------------------------------------------------------------
# decide()
# ---------------------------------------------------------------------------
def test_decide_returns_parsed_decision() -> None:
    provider = ScriptedProvider("```json\n" + json.dumps(decision("hi there")) + "\n```")
    result = asyncio.run(Orchestrator(provider, _registry()).decide("hello", []))
    assert result.response == "hi there"
    assert len(provider.calls) == 1


def test_decide_falls_back_on_invalid_json(caplog) -> None:
    """Invalid output yields the fixed fallback and the raw text is logged."""

    provider = ScriptedProvider("{this is not json")
    with caplog.at_level(logging.ERROR, logger="autopoiesis.agent.orchestrator"):
        result = asyncio.run(Orchestrator(provider, _registry()).decide("hello", []))

    assert result == FALLBACK_DECISION
    assert "{this is not json" in caplog.text
    assert len(provider.calls) == 1  # no retry


def test_decide_falls_back_on_provider_error() -> None:
    provider = ScriptedProvider(RuntimeError("network down"))
    result = asyncio.run(Orchestrator(provider, _registry()).decide("hello", []))
    assert result == FALLBACK_DECISION


def test_fallback_is_not_shared() -> None:
    """Callers mutating a fallback must not corrupt the module constant."""

    provider = ScriptedProvider("", "")
    orchestrator = Orchestrator(provider, _registry())
    first = asyncio.run(orchestrator.decide("a", []))
    first.actions.append(None)  # type: ignore[arg-type]
    second = asyncio.run(orchestrator.decide("b", []))
    assert second.actions == []


def test_serialize_results_survives_unencodable_values() -> None:
    """Tuple keys and circular lists fall back to their repr."""

    loop: list = []
    loop.append(loop)
    messages = Orchestrator(ScriptedProvider(), _registry()).build_messages(
        "now", [], {"pairs": ToolResult.ok({(1, 2): "a"}), "loop": ToolResult.ok(loop)}
    )
    payload = json.loads(messages[-1].content.split("\n\n")[0].split("\n", 1)[1])
    assert payload["pairs"] == {"success": True, "result": "{(1, 2): 'a'}", "error": None}
    assert payload["loop"]["result"] == "[[...]]"
