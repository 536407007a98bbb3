"""
Self-rewrite coordinator.

Committing new tools rewrites the seed block of the persisted tool module so the next process
start is seeded with everything committed so far.  The block is delimited by two marker comments::

    # <tool-seed>
    SEED_TOOLS = [...]
    # </tool-seed>

The rewrite is all-or-nothing: the new source is rendered and syntax-checked before anything is
written, and the file is swapped in atomically.
"""

import ast
import logging
import re
from pathlib import Path
from typing import (
    List,
    Sequence,
)

from autopoiesis.core.schema import ToolSpec
from autopoiesis.memory.history_store import atomic_write_text
from autopoiesis.tools import (
    SEED_VARIABLE,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

SEED_START = "# <tool-seed>"
SEED_END = "# </tool-seed>"

_SEED_BLOCK_RE = re.compile(
    rf"^{re.escape(SEED_START)}[ \t]*\n.*?^{re.escape(SEED_END)}[ \t]*$",
    re.MULTILINE | re.DOTALL,
)


class RewriteTargetError(RuntimeError):
    """Raised when the seed block is missing, ambiguous, or would be rewritten into invalid code."""


def render_seed_block(tools: Sequence[ToolSpec]) -> str:
    """Serialize *tools* as the marker-delimited Python literal."""
    lines = [SEED_START, f"{SEED_VARIABLE} = ["]
    for tool in tools:
        lines.append("    {")
        lines.extend(f"        {key!r}: {value!r}," for key, value in tool.model_dump().items())
        lines.append("    },")
    lines.extend(["]", SEED_END])
    return "\n".join(lines)


def rewrite_seed_source(source: str, tools: Sequence[ToolSpec]) -> str:
    """
    Return *source* with its seed block replaced by *tools*.

    Raises
    ------
    RewriteTargetError
        If *source* does not contain exactly one seed block, or the result does not parse.
    """
    matches = list(_SEED_BLOCK_RE.finditer(source))
    if len(matches) != 1:
        raise RewriteTargetError(
            f"expected exactly one '{SEED_START}' ... '{SEED_END}' block, found {len(matches)}"
        )

    match = matches[0]
    updated = source[: match.start()] + render_seed_block(tools) + source[match.end() :]

    try:
        ast.parse(updated)
    except SyntaxError as exc:
        raise RewriteTargetError(f"rewritten seed module does not parse: {exc}") from exc
    return updated


class SelfRewriteCoordinator:
    """Merges proposed tools into the registry and the persisted seed module."""

    def __init__(self, registry: ToolRegistry, seed_path: str | Path):
        self.registry = registry
        self.seed_path = Path(seed_path)

    def commit(self, new_tools: Sequence[ToolSpec]) -> List[ToolSpec]:
        """
        Persist ``registry.export() + new_tools`` and register *new_tools* in memory.

        Nothing changes, neither on disk nor in memory, if the rewrite is rejected.

        Returns
        -------
        List[ToolSpec]
            The full tool set now persisted.

        Raises
        ------
        RewriteTargetError
            If the seed module cannot be rewritten safely.
        """
        accumulated = self.registry.export() + list(new_tools)

        try:
            source = self.seed_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RewriteTargetError(f"cannot read seed module {self.seed_path}: {exc}") from exc

        updated = rewrite_seed_source(source, accumulated)
        atomic_write_text(self.seed_path, updated)

        for tool in new_tools:
            self.registry.register(tool)

        logger.info(
            "Committed %d new tool(s) to %s: %s",
            len(new_tools),
            self.seed_path,
            [tool.name for tool in new_tools],
        )
        return accumulated
