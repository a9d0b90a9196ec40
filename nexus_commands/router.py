"""
Command Router
==============

Turns one line of console input into one handler call.

    User types: "h run"
                  ↓
    history.append("h run")           ← always, before anything else
                  ↓
    split on whitespace → "h" + ["run"]
                  ↓
    registry.resolve("h") → alias of "help" → CommandEntry
                  ↓
    await handler(["run"], host_context)
                  ↓
    Ok("help", "...")                 ← or CommandNotFound / HandlerError

Design Decisions
----------------
- The result is a small tagged union instead of "return or raise":

      Ok(command, output)       handler ran; output may be None
      CommandNotFound(name)     nothing registered under that name
      HandlerError(command, message)
                                handler raised; message preserved

  Callers match on the type (or check .is_error) and call .render()
  for the text to show. render() returns None for "no output", which
  the console shows as nothing at all.
- Unknown commands are a normal result, never an exception.
- Handler exceptions are caught here, at the router boundary, so one
  broken command can never take the console loop down with it. The
  traceback goes to the debug log, not to the user.
- Sync and async handlers are both supported. A sync handler runs
  inline on the event loop (the console is single-threaded);
  if it returns an awaitable, that is awaited too.
- No quoting support. Arguments are split on whitespace; a handler
  that wants quoted text joins its args back together.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import traceback
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from nexus_commands.history import HistoryLog
from nexus_commands.registry import CommandEntry, CommandRegistry, Handler


# ─── Results ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Ok:
    """The handler ran and returned normally.

    Attributes
    ----------
    command : str
        Canonical name of the command that ran.
    output : any
        What the handler returned. None is the "no output" sentinel.
    """
    command: str
    output: Any = None

    @property
    def is_error(self) -> bool:
        return False

    def render(self) -> Optional[str]:
        """Text to display, or None when there is nothing to show."""
        if self.output is None:
            return None
        if isinstance(self.output, (list, tuple)):
            text = "\n".join(str(item) for item in self.output)
        else:
            text = str(self.output)
        return text if text != "" else None


@dataclass(frozen=True)
class CommandNotFound:
    """No command or alias matched. Carries the name exactly as typed."""
    name: str

    @property
    def is_error(self) -> bool:
        return True

    @property
    def message(self) -> str:
        return f"Unknown command: {self.name}. Type 'help' for available commands."

    def render(self) -> str:
        return self.message


@dataclass(frozen=True)
class HandlerError:
    """The handler raised. The console keeps running."""
    command: str
    message: str

    @property
    def is_error(self) -> bool:
        return True

    def render(self) -> str:
        return f"Error executing {self.command}: {self.message}"


CommandResult = Union[Ok, CommandNotFound, HandlerError]


def split_command_line(line: str) -> tuple[str, list[str]]:
    """Split "cmd a  b" into ("cmd", ["a", "b"]). Whitespace only."""
    parts = line.split()
    if not parts:
        return "", []
    return parts[0], parts[1:]


# ─── Router ─────────────────────────────────────────────────────────

class CommandRouter:
    """Resolves, invokes and records console command lines.

    One router per console session. It owns (or is handed) a
    CommandRegistry and a HistoryLog; neither is shared with any
    other session.

    Usage
    -----
        router = CommandRouter(context=host_context)
        router.register("echo", lambda args, ctx: " ".join(args))

        result = await router.execute("echo hello")
        # Ok(command="echo", output="hello")
    """

    def __init__(
        self,
        registry: Optional[CommandRegistry] = None,
        history: Optional[HistoryLog] = None,
        context: Any = None,
    ):
        self.registry = registry if registry is not None else CommandRegistry()
        self.history = history if history is not None else HistoryLog()
        self.context = context
        self.logger = logging.getLogger(__name__)

    def register(
        self,
        name: str,
        handler: Handler,
        aliases: Iterable[str] = (),
        description: str = "",
        usage: str = "",
        module: str = "core",
    ) -> CommandEntry:
        """Shortcut for ``router.registry.register(...)``."""
        return self.registry.register(
            name,
            handler,
            aliases=aliases,
            description=description,
            usage=usage,
            module=module,
        )

    async def execute(self, line: str) -> Optional[CommandResult]:
        """Execute one command line.

        Parameters
        ----------
        line : str
            Raw console input.

        Returns
        -------
        CommandResult or None
            None for a blank line (which is not recorded in history).
            Otherwise exactly one of Ok, CommandNotFound, HandlerError.
            Never raises for a handler failure.
        """
        stripped = (line or "").strip()
        if not stripped:
            return None

        self.history.append(line)

        command_name, args = split_command_line(stripped)
        entry = self.registry.resolve(command_name)
        if entry is None:
            self.logger.debug(f"Unknown command: {command_name}")
            return CommandNotFound(command_name)

        try:
            output = entry.handler(args, self.context)
            if inspect.isawaitable(output):
                output = await output
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or e.__class__.__name__
            self.logger.error(f"Command '{entry.name}' failed: {message}")
            self.logger.debug(f"Handler traceback:\n{traceback.format_exc()}")
            return HandlerError(entry.name, message)

        return Ok(entry.name, output)

    # History navigation, for the arrow keys

    def previous(self) -> Optional[str]:
        return self.history.previous()

    def next(self) -> Optional[str]:
        return self.history.next()

    def suggestions(self, partial: str):
        return self.registry.suggest(partial)
