"""
Completion orchestration: prompt construction and decision parsing.

One call to :meth:`Orchestrator.decide` is one completion round.  The provider's text must contain
a single JSON object matching :class:`~autopoiesis.core.schema.Decision`; anything else degrades to
:data:`FALLBACK_DECISION` instead of raising.
"""

import json
import logging
import re
from typing import (
    Any,
    List,
    Mapping,
    Sequence,
)

from pydantic import ValidationError

from autopoiesis.agent.providers import BaseProvider
from autopoiesis.core.schema import (
    Decision,
    ToolResult,
    Turn,
)
from autopoiesis.tools import ToolRegistry

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an AI agent capable of using and generating tools/functions.

Available tools:
{tool_catalog}

IMPORTANT: You must ALWAYS respond with a valid JSON object in the following format:
{{
  "reasoning": "string explaining your thought process",
  "actions": [
    {{
      "tool": "string (name of the tool to use)",
      "args": ["arg0", "arg1"]
    }}
  ],
  "newTools": [
    {{
      "name": "string",
      "description": "string",
      "implementation": "def helper():\\n    return 'bar'\\nreturn helper()"
    }}
  ],
  "response": "string (your response to the user)"
}}

Rules:
1. Your response MUST be a valid JSON object
2. All property names must be in quotes
3. All string values must be in quotes
4. Arrays can be empty but must be present
5. Do not include any text before or after the JSON object

When generating new tools:
1. Each tool should be focused and do one thing well
2. Include proper error handling
3. Tool implementations are the BODY of a Python function; positional arguments are available \
as arg0, arg1, arg2, ...
4. Tool implementations MUST ALWAYS end in a return statement
5. The modules os, json, re, asyncio, httpx and the class pathlib.Path are already available; \
use `await` directly in the body for asynchronous work
6. Do not install packages or import anything beyond the Python standard library
7. When using a free API, always actually use the API - don't simulate one"""

RESULTS_PROMPT = """\
Tool execution results:
{results}

Remember to respond with a valid JSON object as specified in the format above."""

FALLBACK_DECISION = Decision(
    reasoning="Failed to generate proper response",
    actions=[],
    new_tools=[],
    response="Error: Failed to process the request. Please try again.",
)

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?|\n?```")


class DecisionParseError(ValueError):
    """Raised when provider output cannot be turned into a Decision."""


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
def _extract_json_object(content: str) -> str:
    """Strip code fences and isolate the outermost ``{...}`` object."""
    content = _FENCE_RE.sub("", content).strip()

    open_idx = content.find("{")
    if open_idx < 0:
        return content

    # Count braces outside string literals to find the matching closing brace
    depth = 0
    in_string = False
    escaped = False
    for i in range(open_idx, len(content)):
        ch = content[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[open_idx : i + 1]
    return content[open_idx:]


def parse_decision(content: str | None) -> Decision:
    """
    Parse raw provider text into a validated Decision.

    Raises
    ------
    DecisionParseError
        If *content* is empty, not JSON, or does not match the Decision schema.
    """
    if not content or not content.strip():
        raise DecisionParseError("empty completion")

    try:
        return Decision.model_validate(json.loads(_extract_json_object(content)))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise DecisionParseError(str(exc)) from exc


def _result_payload(result: ToolResult) -> dict:
    """JSON-safe form of *result*; values JSON cannot encode are replaced by their repr."""
    try:
        payload = result.model_dump()
        json.dumps(payload, default=str)
        return payload
    except (TypeError, ValueError, RecursionError):
        return {"success": result.success, "result": repr(result.result), "error": result.error}


def serialize_results(tool_results: Mapping[str, ToolResult]) -> str:
    """Render tool results as the JSON embedded in the follow-up prompt."""
    payload = {name: _result_payload(result) for name, result in tool_results.items()}
    return json.dumps(payload, indent=2, default=str)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class Orchestrator:
    """Builds prompts, calls the completion provider once, and validates the answer."""

    def __init__(self, provider: BaseProvider, registry: ToolRegistry):
        self.provider = provider
        self.registry = registry

    def system_prompt(self) -> str:
        """Static instructions with the current tool catalog."""
        catalog = "\n".join(
            f"{name}: {description}" for name, description in self.registry.list_all()
        )
        return SYSTEM_PROMPT.format(tool_catalog=catalog or "(none)")

    def build_messages(
        self,
        user_input: str,
        prior_turns: Sequence[Turn],
        tool_results: Mapping[str, ToolResult] | None = None,
    ) -> List[Turn]:
        """Assemble the ordered prompt for one completion round."""
        messages = [Turn(role="system", content=self.system_prompt())]
        messages.extend(prior_turns)
        messages.append(Turn(role="user", content=user_input))
        if tool_results is not None:
            messages.append(
                Turn(
                    role="system",
                    content=RESULTS_PROMPT.format(results=serialize_results(tool_results)),
                )
            )
        return messages

    async def decide(
        self,
        user_input: str,
        prior_turns: Sequence[Turn],
        tool_results: Mapping[str, ToolResult] | None = None,
    ) -> Decision:
        """
        Run one completion round.

        Never raises for provider or parsing failures; returns :data:`FALLBACK_DECISION` instead.
        """
        logger.debug("Generating decision for input: %s", user_input)
        if tool_results is not None:
            logger.debug("With tool results: %s", tool_results)

        messages = self.build_messages(user_input, prior_turns, tool_results)

        content: Any = None
        try:
            content = await self.provider.complete(messages)
            decision = parse_decision(content)
        except DecisionParseError as exc:
            logger.error("Failed to parse completion: %s", exc)
            logger.error("Raw response: %s", content)
            return FALLBACK_DECISION.model_copy(deep=True)
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Completion provider error: %s", exc)
            return FALLBACK_DECISION.model_copy(deep=True)

        logger.debug("Parsed decision: %s", decision)
        return decision
