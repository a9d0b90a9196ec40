"""
Script Interpreter
==================

Walks a parsed script top to bottom and drives the console with it.

    run("daily-routine")
        ↓
    parse(content)             ← all-or-nothing; a syntax error stops
        ↓                         here with zero statements executed
    fresh ExecutionContext      ← variables never leak between runs
        ↓
    for each statement:
        stop requested?  → finish early, result.cancelled = True
        Raw / Terminal   → expand → await router.execute(line)
        Echo             → expand → output buffer
        Set              → expand → variables
        Wait             → non-blocking asyncio sleep
        If / For / While → recurse into the chosen block / body
        Repeat           → route one command line N times
        Function         → remember the body; a Raw line whose first
                           word names it calls it instead of the router

Scheduling Model
----------------
Everything runs on the event loop, one statement at a time. Each
command is awaited before the next statement starts, so a script never
fans out. 'wait' is the only deliberate suspension point besides the
commands themselves, and it yields to the loop instead of blocking.

One run per session. A second run while one is active (from another
task, or from the script itself via 'terminal run other') comes back as
ScriptAlreadyRunning and the first run carries on untouched. Nested
runs can be switched on with allow_nested_runs; they then get their own
fresh context and a depth limit.

Stopping is cooperative. stop() raises a flag that is checked between
statements, never in the middle of one: a running 'wait' or command is
allowed to finish first (unless interrupt_wait is set, which lets a
'wait' end early).

Error Policy
------------
    ScriptSyntaxError     nothing ran; returned in the result
    ScriptRuntimeError    the failing statement's line number; the rest
                          of THIS run is skipped
    unknown command       reported like interactive input, run goes on
    handler error         reported like interactive input, run goes on

run() itself never raises for any of these. It returns a
ScriptRunResult and leaves presentation to the caller.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from nexus_commands.errors import (
    ScriptAlreadyRunning,
    ScriptError,
    ScriptNotFound,
    ScriptRuntimeError,
    ScriptSyntaxError,
)
from nexus_commands.script_parser import (
    Comment, Echo, For, Function, If, Raw, Repeat, Set, Terminal, Wait, While,
    parse,
)
from nexus_commands.script_store import Script
from nexus_commands.variables import VariableStore, is_identifier

OutputSink = Callable[[str, str], Any]

# Interpreters with a run in progress further up this task's call chain.
_active_runs: contextvars.ContextVar[tuple] = contextvars.ContextVar(
    "nexus_active_runs", default=()
)

_RANGE = re.compile(r'^(-?\d+)\.\.(-?\d+)$')
_COMPARISON = re.compile(r'^(.*?)\s*(==|!=)\s*(.*)$')

MAX_CALL_DEPTH = 100


# ─── Run state ──────────────────────────────────────────────────────

class CancellationToken:
    """Stop flag for a script run, awaitable for interruptible waits.

    The asyncio.Event is only created inside wait(), so a token can be
    built before any event loop exists.
    """

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def reset(self) -> None:
        self._cancelled = False
        self._event = None

    async def wait(self) -> None:
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()


async def sleep(seconds: float, token: Optional[CancellationToken] = None,
                interruptible: bool = False) -> bool:
    """Suspend without blocking the loop.

    Returns True if the sleep was cut short by the token. Only
    possible when interruptible is set; otherwise the full duration
    always elapses.
    """
    if seconds <= 0:
        await asyncio.sleep(0)
        return False
    if token is None or not interruptible:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(token.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False


@dataclass
class ExecutionContext:
    """Scope and output of one script invocation.

    Attributes
    ----------
    variables : VariableStore
        Bindings for this run only.
    output : list[str]
        Every line emitted so far, in order.
    cursor : int
        Number of statements started so far (index of the current one).
    line : int or None
        Script line of the statement being executed.
    results : list
        Router results of every Raw/Terminal statement.
    sink : callable or None
        ``sink(text, kind)`` receives each line as it is emitted, so
        the console can show progress before the run finishes.
    functions : dict
        Function definitions seen so far, by name.
    """
    name: str = "<inline>"
    variables: VariableStore = field(default_factory=VariableStore)
    output: list = field(default_factory=list)
    cursor: int = 0
    line: Optional[int] = None
    results: list = field(default_factory=list)
    sink: Optional[OutputSink] = None
    source: tuple = ()
    functions: dict = field(default_factory=dict)
    call_depth: int = 0

    def source_line(self, line: int) -> str:
        if 1 <= line <= len(self.source):
            return self.source[line - 1].strip()
        return ""

    def emit(self, text: str, kind: str = "output", record: bool = True) -> None:
        if record:
            self.output.append(text)
        if self.sink is not None:
            self.sink(text, kind)


@dataclass
class ScriptRunResult:
    """Outcome of ScriptInterpreter.run()."""
    name: str
    output: list = field(default_factory=list)
    error: Optional[ScriptError] = None
    cancelled: bool = False
    statements_executed: int = 0

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled

    def summary(self) -> str:
        """One-line status for the console."""
        if isinstance(self.error, ScriptAlreadyRunning):
            return f"❌ Script \"{self.error.running}\" is already running"
        if isinstance(self.error, ScriptNotFound):
            return (f"❌ Script \"{self.error.name}\" not found. "
                    f"Use 'script list' to see available scripts.")
        if isinstance(self.error, ScriptSyntaxError):
            return f"❌ Syntax error in \"{self.name}\", {self.error.format()}"
        if self.error is not None:
            return f"❌ Script error in \"{self.name}\", {self.error.format()}"
        if self.cancelled:
            return f"⏹️  Script \"{self.name}\" stopped"
        return f"✅ Script \"{self.name}\" completed"


@dataclass
class ActiveRun:
    name: str
    context: ExecutionContext
    started: float = field(default_factory=time.time)


class _Cancelled(Exception):
    """Internal: unwinds the statement walk after stop()."""


# ─── Conditions and loops ───────────────────────────────────────────

def unquote(text: str) -> str:
    """Strip one pair of matching surrounding quotes."""
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def evaluate_condition(text: str) -> bool:
    """Evaluate an already-expanded condition.

        a == b / a != b     string comparison (surrounding quotes ignored)
        -z text             true when text is empty
        -n text             true when text is not empty
        anything else       true unless "", "0" or "false"
    """
    text = text.strip()
    if text == "-z" or text.startswith("-z "):
        return unquote(text[2:].strip()) == ""
    if text == "-n" or text.startswith("-n "):
        return unquote(text[2:].strip()) != ""

    match = _COMPARISON.match(text)
    if match is not None:
        left = unquote(match.group(1).strip())
        right = unquote(match.group(3).strip())
        equal = left == right
        return equal if match.group(2) == "==" else not equal

    value = unquote(text)
    return value != "" and value != "0" and value.lower() != "false"


def expand_items(text: str, limit: Optional[int] = None) -> list:
    """Split loop items on whitespace, expanding N..M integer ranges."""
    items = []
    for word in text.split():
        match = _RANGE.match(word)
        if match is None:
            items.append(word)
        else:
            start, end = int(match.group(1)), int(match.group(2))
            step = 1 if end >= start else -1
            count = abs(end - start) + 1
            if limit is not None and len(items) + count > limit:
                raise ValueError(f"loop has more than {limit} items")
            items.extend(str(n) for n in range(start, end + step, step))
        if limit is not None and len(items) > limit:
            raise ValueError(f"loop has more than {limit} items")
    return items


# ─── Interpreter ────────────────────────────────────────────────────

class ScriptInterpreter:
    """Executes scripts against one session's CommandRouter.

    Parameters
    ----------
    router : CommandRouter
        Where Raw and Terminal statements are sent.
    store : script store, optional
        Used by run_stored() to look scripts up by name.
    features : mapping, optional
        Session feature flags; 'debug_mode' turns on per-statement
        tracing.
    allow_nested_runs : bool
        Let a running script start another one.
    max_nesting_depth : int
        Limit for nested runs.
    max_wait_ms : int
        Upper bound for a single wait/sleep.
    interrupt_wait : bool
        Let stop() cut a running wait short.
    max_loop_items : int
        Upper bound for the item list of one for-loop, the iterations
        of one while-loop and the count of one repeat.
    """

    def __init__(
        self,
        router,
        store=None,
        features: Optional[Mapping[str, Any]] = None,
        allow_nested_runs: bool = False,
        max_nesting_depth: int = 4,
        max_wait_ms: int = 60000,
        interrupt_wait: bool = False,
        max_loop_items: int = 10000,
    ):
        self.router = router
        self.store = store
        self.features = features if features is not None else {}
        self.allow_nested_runs = allow_nested_runs
        self.max_nesting_depth = max_nesting_depth
        self.max_wait_ms = max_wait_ms
        self.interrupt_wait = interrupt_wait
        self.max_loop_items = max_loop_items

        self._active: Optional[ActiveRun] = None
        self._token = CancellationToken()
        self.logger = logging.getLogger(__name__)

    # Core operations

    async def run(
        self,
        script,
        context: Optional[ExecutionContext] = None,
        args: Sequence[str] = (),
        sink: Optional[OutputSink] = None,
    ) -> ScriptRunResult:
        """Parse and execute a script.

        Parameters
        ----------
        script : Script or str
            A stored script, or raw script text.
        context : ExecutionContext, optional
            Start from this context instead of a fresh one.
        args : sequence of str
            Bound as $1..$n, with $argc and $args.
        sink : callable, optional
            ``sink(text, kind)`` for live output.

        Returns
        -------
        ScriptRunResult
            Never raises for syntax, runtime or re-entrancy errors.
        """
        if isinstance(script, Script):
            name, text = script.name, script.content
        else:
            name, text = (context.name if context else "<inline>"), str(script)

        running_here = _active_runs.get()
        nested = id(self) in running_here
        if self._active is not None:
            if not (nested and self.allow_nested_runs):
                self.logger.warning(
                    f"Rejected run of '{name}': '{self._active.name}' is already running"
                )
                return ScriptRunResult(name, error=ScriptAlreadyRunning(self._active.name, name))
            depth = sum(1 for run_id in running_here if run_id == id(self))
            if depth >= self.max_nesting_depth:
                return ScriptRunResult(name, error=ScriptRuntimeError(
                    f"maximum script nesting depth ({self.max_nesting_depth}) exceeded"
                ))

        try:
            statements = parse(text)
        except ScriptSyntaxError as e:
            self.logger.warning(f"Syntax error in script '{name}': {e.format()}")
            return ScriptRunResult(name, error=e)

        ctx = context if context is not None else ExecutionContext(name=name)
        if sink is not None:
            ctx.sink = sink
        ctx.source = tuple(text.splitlines())
        self._bind_arguments(ctx, name, args)

        outermost = self._active is None
        if outermost:
            self._token.reset()
            self._active = ActiveRun(name, ctx)
        marker = _active_runs.set(running_here + (id(self),))

        result = ScriptRunResult(name, output=ctx.output)
        self.logger.info(f"Running script '{name}' ({len(statements)} top-level statements)")
        try:
            await self._execute_block(statements, ctx)
        except _Cancelled:
            result.cancelled = True
            self.logger.info(f"Script '{name}' stopped at line {ctx.line}")
        except ScriptRuntimeError as e:
            result.error = e
            self.logger.warning(f"Script '{name}' failed: {e.format()}")
        finally:
            _active_runs.reset(marker)
            if outermost:
                self._active = None
            result.statements_executed = ctx.cursor

        return result

    async def run_stored(
        self,
        name: str,
        args: Sequence[str] = (),
        sink: Optional[OutputSink] = None,
    ) -> ScriptRunResult:
        """Look a script up in the store and run it."""
        script = self.store.get(name) if self.store is not None else None
        if script is None:
            return ScriptRunResult(name, error=ScriptNotFound(name))
        if self._active is None or (self.allow_nested_runs and id(self) in _active_runs.get()):
            script.executions += 1
            self.store.put(script)
        return await self.run(script, args=args, sink=sink)

    def stop(self) -> bool:
        """Ask the active run to stop after its current statement."""
        if self._active is None:
            return False
        self._token.cancel()
        return True

    @property
    def is_running(self) -> bool:
        return self._active is not None

    def status(self) -> Optional[dict]:
        """Describe the active run, or None when idle."""
        if self._active is None:
            return None
        ctx = self._active.context
        return {
            'name': self._active.name,
            'started': self._active.started,
            'elapsed': time.time() - self._active.started,
            'line': ctx.line,
            'statements': ctx.cursor,
            'stopping': self._token.cancelled,
        }

    # Statement walk

    async def _execute_block(self, statements, ctx: ExecutionContext) -> None:
        for stmt in statements:
            if self._token.cancelled:
                raise _Cancelled()
            ctx.cursor += 1
            ctx.line = stmt.line
            if self.features.get('debug_mode'):
                ctx.emit(f"[DEBUG] line {stmt.line}: {ctx.source_line(stmt.line)}", "debug", record=False)
            try:
                await self._execute(stmt, ctx)
            except (_Cancelled, ScriptRuntimeError, asyncio.CancelledError):
                raise
            except Exception as e:
                self.logger.debug(f"Unexpected error at line {stmt.line}", exc_info=True)
                raise ScriptRuntimeError(str(e) or e.__class__.__name__, stmt.line) from e

    async def _execute(self, stmt, ctx: ExecutionContext) -> None:
        variables = ctx.variables

        if isinstance(stmt, Comment):
            return

        if isinstance(stmt, Raw):
            line = variables.expand(stmt.command_line).strip()
            words = line.split()
            if words and words[0] in ctx.functions:
                await self._call(ctx.functions[words[0]], words[1:], ctx, stmt.line)
                return
            await self._route(line, ctx)
            return

        if isinstance(stmt, Terminal):
            await self._route(variables.expand(stmt.command_line).strip(), ctx)
            return

        if isinstance(stmt, Echo):
            ctx.emit(variables.expand(unquote(stmt.text)))
            return

        if isinstance(stmt, Set):
            name = variables.expand(stmt.name).strip()
            if not is_identifier(name):
                raise ScriptRuntimeError(
                    f"invalid variable name in 'set': '{stmt.name}'", stmt.line
                )
            variables.set(name, variables.expand(unquote(stmt.expr)))
            return

        if isinstance(stmt, Wait):
            await self._wait(stmt, ctx)
            return

        if isinstance(stmt, If):
            taken = evaluate_condition(variables.expand(stmt.condition))
            await self._execute_block(stmt.then_block if taken else stmt.else_block, ctx)
            return

        if isinstance(stmt, For):
            await self._loop(stmt, ctx)
            return

        if isinstance(stmt, While):
            await self._while(stmt, ctx)
            return

        if isinstance(stmt, Repeat):
            await self._repeat(stmt, ctx)
            return

        if isinstance(stmt, Function):
            ctx.functions[stmt.name] = stmt
            return

        raise ScriptRuntimeError(f"unsupported statement {type(stmt).__name__}", stmt.line)

    async def _route(self, line: str, ctx: ExecutionContext) -> None:
        if not line:
            return
        result = await self.router.execute(line)
        ctx.results.append(result)
        text = result.render() if result is not None else None
        if text:
            ctx.emit(text, "error" if result.is_error else "output")

    async def _call(self, function: Function, args, ctx: ExecutionContext, line: int) -> None:
        """Bind parameters, run the body, then restore the old bindings."""
        if ctx.call_depth >= MAX_CALL_DEPTH:
            raise ScriptRuntimeError(
                f"maximum function call depth ({MAX_CALL_DEPTH}) exceeded", line
            )
        variables = ctx.variables
        saved = {name: (variables.has(name), variables.get(name)) for name in function.params}
        for index, name in enumerate(function.params):
            variables.set(name, args[index] if index < len(args) else "")

        ctx.call_depth += 1
        try:
            await self._execute_block(function.body, ctx)
        finally:
            ctx.call_depth -= 1
            for name, (had_binding, previous) in saved.items():
                if had_binding:
                    variables.set(name, previous)
                else:
                    variables.unset(name)

    async def _while(self, stmt: While, ctx: ExecutionContext) -> None:
        iterations = 0
        while evaluate_condition(ctx.variables.expand(stmt.condition)):
            if self._token.cancelled:
                raise _Cancelled()
            iterations += 1
            if iterations > self.max_loop_items:
                raise ScriptRuntimeError(
                    f"while loop exceeded {self.max_loop_items} iterations", stmt.line
                )
            await self._execute_block(stmt.body, ctx)
            await asyncio.sleep(0)

    async def _repeat(self, stmt: Repeat, ctx: ExecutionContext) -> None:
        text = ctx.variables.expand(stmt.count).strip()
        try:
            count = int(text)
        except ValueError:
            raise ScriptRuntimeError(f"invalid repeat count '{text}'", stmt.line) from None
        if count < 0:
            raise ScriptRuntimeError(f"negative repeat count '{text}'", stmt.line)
        if count > self.max_loop_items:
            raise ScriptRuntimeError(
                f"repeat count {count} exceeds {self.max_loop_items}", stmt.line
            )
        command = Raw(stmt.line, stmt.command_line)
        for _ in range(count):
            if self._token.cancelled:
                raise _Cancelled()
            await self._execute(command, ctx)

    async def _wait(self, stmt: Wait, ctx: ExecutionContext) -> None:
        text = ctx.variables.expand(stmt.duration).strip()
        try:
            amount = float(text)
        except ValueError:
            raise ScriptRuntimeError(f"invalid duration '{text}'", stmt.line) from None
        if not math.isfinite(amount):
            raise ScriptRuntimeError(f"invalid duration '{text}'", stmt.line)
        if amount < 0:
            raise ScriptRuntimeError(f"negative duration '{text}'", stmt.line)

        ms = amount if stmt.unit == "ms" else amount * 1000
        if ms > self.max_wait_ms:
            self.logger.debug(f"Clamping wait of {ms}ms to {self.max_wait_ms}ms")
            ms = self.max_wait_ms
        await sleep(ms / 1000, self._token, interruptible=self.interrupt_wait)

    async def _loop(self, stmt: For, ctx: ExecutionContext) -> None:
        variables = ctx.variables
        try:
            items = expand_items(variables.expand(stmt.items), self.max_loop_items)
        except ValueError as e:
            raise ScriptRuntimeError(str(e), stmt.line) from None

        had_binding = variables.has(stmt.var)
        previous = variables.get(stmt.var)
        try:
            for item in items:
                variables.set(stmt.var, item)
                await self._execute_block(stmt.body, ctx)
        finally:
            if had_binding:
                variables.set(stmt.var, previous)
            else:
                variables.unset(stmt.var)

    @staticmethod
    def _bind_arguments(ctx: ExecutionContext, name: str, args: Sequence[str]) -> None:
        args = list(args)
        ctx.variables.set("0", name)
        for index, value in enumerate(args, start=1):
            ctx.variables.set(str(index), value)
        ctx.variables.set("argc", len(args))
        ctx.variables.set("args", " ".join(args))
