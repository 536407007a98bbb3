"""
Tool registry for Autopoiesis.

Tools are kept as source text (see :class:`~autopoiesis.core.schema.ToolSpec`) and only compiled
when they run.  The registry is seeded from the persisted seed module at startup and grows at
runtime when the completion provider proposes new tools.

Duplicate names are allowed.  Lookups resolve to the most recently registered tool with a given
name, and an earlier tool of the same name stays in :meth:`ToolRegistry.export` so the persisted
set only ever grows.
"""

import logging
import runpy
from pathlib import Path
from typing import (
    Iterable,
    Iterator,
    List,
    Sequence,
    Tuple,
)

from pydantic import TypeAdapter

from autopoiesis.core.schema import ToolSpec

logger = logging.getLogger(__name__)

SEED_VARIABLE = "SEED_TOOLS"
"""Name of the list literal holding the persisted tool set inside the seed module."""

_tool_list = TypeAdapter(List[ToolSpec])


class ToolNotFoundError(LookupError):
    """Raised when a requested tool name is absent from the registry."""


class ToolCatalog:
    """
    Restartable view over the ``(name, description)`` pairs of a registry.

    Every call to ``iter()`` walks the registry afresh, so the view always reflects the tools
    registered so far.  Shadowed entries are skipped.
    """

    def __init__(self, tools: Sequence[ToolSpec]):
        self._tools = tools

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        last_index = {tool.name: i for i, tool in enumerate(self._tools)}
        for i, tool in enumerate(self._tools):
            if last_index[tool.name] == i:
                yield tool.name, tool.description


class ToolRegistry:
    """Ordered collection of tools, looked up by name."""

    def __init__(self, tools: Iterable[ToolSpec] = ()):
        self._tools: List[ToolSpec] = []
        for tool in tools:
            self.register(tool)

    @classmethod
    def from_seed(cls, path: str | Path) -> "ToolRegistry":
        """Build a registry from the persisted seed module at *path*."""
        return cls(load_seed(path))

    def register(self, tool: ToolSpec) -> None:
        """Append *tool*; a tool with the same name is shadowed, not replaced."""
        if any(existing.name == tool.name for existing in self._tools):
            logger.warning("Tool '%s' is already registered; the new one shadows it", tool.name)
        logger.debug("Registering tool '%s'", tool.name)
        self._tools.append(tool)

    def find(self, name: str) -> ToolSpec:
        """
        Return the authoritative tool registered under *name*.

        Raises
        ------
        ToolNotFoundError
            If no tool carries that name.
        """
        for tool in reversed(self._tools):
            if tool.name == name:
                return tool
        raise ToolNotFoundError(f"Tool '{name}' not found")

    def list_all(self) -> ToolCatalog:
        """Name/description pairs for prompt construction (never the implementation)."""
        return ToolCatalog(self._tools)

    def export(self) -> List[ToolSpec]:
        """Full ordered tool set, duplicates included, for persistence."""
        return [tool.model_copy() for tool in self._tools]

    def names(self) -> List[str]:
        """Names of the effective tools, in registration order."""
        return [name for name, _ in self.list_all()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return any(tool.name == name for tool in self._tools)


def load_seed(path: str | Path) -> List[ToolSpec]:
    """
    Execute the seed module at *path* and return the tools it declares.

    Parameters
    ----------
    path:
        Location of a Python module defining ``SEED_TOOLS`` as a list of
        ``{"name", "description", "implementation"}`` mappings.

    Raises
    ------
    FileNotFoundError
        If the seed module does not exist.
    ValueError
        If the module does not define a valid ``SEED_TOOLS`` list.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Tool seed module not found: {path}")

    namespace = runpy.run_path(str(path))
    if SEED_VARIABLE not in namespace:
        raise ValueError(f"{path} does not define {SEED_VARIABLE}")

    tools = _tool_list.validate_python(namespace[SEED_VARIABLE])
    logger.debug("Loaded %d tools from %s", len(tools), path)
    return tools
