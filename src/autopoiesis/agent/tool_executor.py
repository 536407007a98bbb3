"""Compiles tool source into callables, runs them and wraps every failure in a ToolResult."""

import ast
import asyncio
import inspect
import json
import logging
import os
import re
import textwrap
import threading
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Sequence,
)

import httpx

from autopoiesis.config import settings
from autopoiesis.core.schema import (
    ToolResult,
    ToolSpec,
)
from autopoiesis.tools import (
    ToolNotFoundError,
    ToolRegistry,
)

logger = logging.getLogger(__name__)

_ENTRY_POINT = "__tool__"
_ASYNC_NODES = (ast.Await, ast.AsyncFor, ast.AsyncWith)
_NESTED_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)


class ToolExitError(RuntimeError):
    """Raised in place of a SystemExit coming out of a tool body."""


def _tool_namespace() -> Dict[str, Any]:
    """Globals visible to every tool body."""
    return {
        "asyncio": asyncio,
        "httpx": httpx,
        "json": json,
        "os": os,
        "re": re,
        "Path": Path,
        "SOURCE_PATH": settings.SEED_PATH,
        "logger": logging.getLogger("autopoiesis.tool"),
    }


def _uses_await(body: Sequence[ast.stmt]) -> bool:
    """True if *body* awaits at its own level (nested functions don't count)."""
    pending: list[ast.AST] = list(body)
    while pending:
        node = pending.pop()
        if isinstance(node, _ASYNC_NODES):
            return True
        if isinstance(node, ast.comprehension) and node.is_async:
            return True
        if isinstance(node, _NESTED_SCOPES):
            continue
        pending.extend(ast.iter_child_nodes(node))
    return False


def compile_tool(tool: ToolSpec, arity: int) -> Callable[..., Any]:
    """
    Turn *tool*'s implementation into a function taking ``arg0 .. arg{arity-1}``.

    The body becomes a coroutine function if it awaits anything, a plain function otherwise.

    Raises
    ------
    SyntaxError
        If the implementation is not a valid function body.
    """
    params = ", ".join(f"arg{i}" for i in range(arity))
    body = textwrap.indent(textwrap.dedent(tool.implementation).strip() or "pass", "    ")
    source = f"async def {_ENTRY_POINT}({params}):\n{body}\n"

    tree = ast.parse(source, filename=tool.name)
    if not _uses_await(tree.body[0].body):  # type: ignore[attr-defined]
        source = source[len("async ") :]

    namespace = _tool_namespace()
    exec(compile(source, f"<tool {tool.name}>", "exec"), namespace)  # pylint: disable=exec-used
    return namespace[_ENTRY_POINT]


async def _call_async(fn: Callable[..., Any], args: Sequence[Any]) -> Any:
    try:
        return await fn(*args)
    except SystemExit as exc:
        raise ToolExitError(f"tool tried to exit with code {exc.code!r}") from None


def _call_in_thread(fn: Callable[..., Any], args: Sequence[Any], name: str) -> asyncio.Future:
    """
    Run a synchronous tool body on its own daemon thread.

    A body that outlives its timeout is left running; being a daemon, the thread holds up neither
    ``asyncio.run`` nor interpreter exit.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def _settle(result: Any, exc: BaseException | None) -> None:
        if future.done():
            return
        if exc is not None:
            future.set_exception(exc)
        else:
            future.set_result(result)

    def _worker() -> None:
        result: Any = None
        error: BaseException | None = None
        try:
            result = fn(*args)
        except SystemExit as exc:
            error = ToolExitError(f"tool tried to exit with code {exc.code!r}")
        except Exception as exc:  # noqa: BLE001
            error = exc
        try:
            loop.call_soon_threadsafe(_settle, result, error)
        except RuntimeError:
            logger.debug("Tool '%s' finished after its event loop closed", name)

    threading.Thread(target=_worker, name=f"tool-{name}", daemon=True).start()
    return future


async def execute_tool(
    tool: ToolSpec, args: Sequence[Any] | None = None, timeout: float | None = None
) -> ToolResult:
    """
    Compile *tool* and invoke it with positional *args*.

    Parameters
    ----------
    tool:
        The tool to run.
    args:
        Positional arguments, bound to ``arg0``, ``arg1``, ... in order.
    timeout:
        Seconds before the invocation is abandoned.  Defaults to ``settings.TOOL_TIMEOUT``.

    Returns
    -------
    ToolResult
        Never raises: compile errors, runtime errors and timeouts all come back as an
        unsuccessful result.
    """
    args = list(args or [])
    if timeout is None:
        timeout = settings.TOOL_TIMEOUT

    logger.debug("Executing tool '%s' with args=%s", tool.name, args)
    try:
        fn = compile_tool(tool, len(args))
        if inspect.iscoroutinefunction(fn):
            result = await asyncio.wait_for(_call_async(fn, args), timeout=timeout)
        else:
            result = await asyncio.wait_for(_call_in_thread(fn, args, tool.name), timeout=timeout)
    except SyntaxError as exc:
        logger.warning("Tool '%s' failed to compile: %s", tool.name, exc)
        return ToolResult.fail(f"Tool '{tool.name}' failed to compile: {exc}")
    except asyncio.TimeoutError:
        logger.warning("Tool '%s' timed out after %ss", tool.name, timeout)
        return ToolResult.fail(f"Tool '{tool.name}' timed out after {timeout} seconds")
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", tool.name)
        return ToolResult.fail(f"Tool execution failed: {type(exc).__name__}: {exc}")

    logger.debug("Tool '%s' returned: %r", tool.name, result)
    return ToolResult.ok(result)


async def run_action(
    registry: ToolRegistry, name: str, args: Sequence[Any] | None = None
) -> ToolResult:
    """Look up *name* in *registry* and execute it; a missing tool is an unsuccessful result."""
    try:
        tool = registry.find(name)
    except ToolNotFoundError as exc:
        logger.warning("%s", exc)
        return ToolResult.fail(str(exc))
    return await execute_tool(tool, args)
