"""
Console Error Taxonomy
======================

Exceptions raised by the command system. Two outcomes that look like
errors are NOT here: an unknown command and a handler that
blew up are ordinary router results (CommandNotFound, HandlerError in
router.py), because the console has to keep going after either one.

    ConsoleError
    ├── InvalidRegistration      bad command metadata at register() time
    └── ScriptError              anything a script run can report
        ├── ScriptSyntaxError    parse time, nothing has executed yet
        ├── ScriptRuntimeError   a statement failed, the rest is skipped
        ├── ScriptAlreadyRunning re-entrancy guard
        └── ScriptNotFound       no script with that name in the store

Script errors are returned inside a ScriptRunResult rather than raised
out of ScriptInterpreter.run(). They still subclass Exception so the
store and the editor can raise them where a plain raise reads better.
"""

from __future__ import annotations

from typing import Optional


class ConsoleError(Exception):
    """Base class for all console errors."""


class InvalidRegistration(ConsoleError):
    """A command was registered with an empty name, alias or bad handler."""


class ScriptError(ConsoleError):
    """Base class for errors reported by a script run.

    Attributes
    ----------
    line : int or None
        1-based line number in the script text, when one applies.
    """

    def __init__(self, message: str, line: Optional[int] = None):
        self.message = message
        self.line = line
        super().__init__(self.format())

    def format(self) -> str:
        """Short single-line message for the console."""
        if self.line is None:
            return self.message
        return f"line {self.line}: {self.message}"


class ScriptSyntaxError(ScriptError):
    """Malformed script text. Raised before any statement runs.

    Attributes
    ----------
    keyword : str
        The keyword that could not be matched ('if', 'for', 'endif', ...).
    """

    def __init__(self, message: str, line: Optional[int] = None, keyword: str = ""):
        self.keyword = keyword
        super().__init__(message, line)


class ScriptRuntimeError(ScriptError):
    """A statement failed while the script was executing."""


class ScriptAlreadyRunning(ScriptError):
    """A run was requested while another run is active in the session."""

    def __init__(self, running: str, requested: str = ""):
        self.running = running
        self.requested = requested
        super().__init__(f"script '{running}' is already running")


class ScriptNotFound(ScriptError):
    """No script with the requested name exists in the store."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"script '{name}' not found")
