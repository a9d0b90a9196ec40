"""
Nexus Command System
====================

Command routing and a small scripting language for the Nexus console.
Works identically behind the terminal loop (nexus.py) and the web
console (web_interface.py): both just feed lines into a ConsoleSession.

Architecture Overview
---------------------
    ┌─────────────────┐     ┌────────────────┐     ┌──────────────────┐
    │  User Input      │────►│ ConsoleSession │────►│  CommandRouter   │
    │  (CLI or Web)    │     │ (editor mode?) │     │  history, lookup │
    └─────────────────┘     └────────────────┘     └────────┬─────────┘
                                                            │ handler(args, ctx)
                                   ┌────────────────────────┼───────────┐
                                   ▼                        ▼           ▼
                             core commands           script commands   ...
                                                            │
                                                   ┌────────▼─────────┐
                                                   │ ScriptInterpreter│──► back into
                                                   │ parse, then walk │    the router,
                                                   └──────────────────┘    one line at
                                                                           a time

Scripts are ordinary console input with a few extra keywords. Anything
a script does by way of a command, a user could have typed.

Adding a Command
----------------
A command is a function taking (args, ctx). Return text (or a list of
lines) to show it, return None to show nothing, raise to fail:

    def weather_command(args, ctx):
        city = " ".join(args) or "Hobart"
        return f"Weather for {city}: 14°C, light rain"

    session.router.register("weather", weather_command,
                            aliases=["wx"], description="Show weather",
                            usage="weather [city]", module="weather")

Async handlers work the same way. ctx is a HostContext:
ctx.add_output(text, kind), ctx.features, ctx.module("scripts").

Module Structure
----------------
    nexus_commands/
    ├── __init__.py          ← This file.
    ├── errors.py            ← ConsoleError taxonomy.
    ├── registry.py          ← CommandRegistry, CommandEntry, aliases.
    ├── history.py           ← HistoryLog with arrow-key navigation.
    ├── router.py            ← CommandRouter and Ok/CommandNotFound/HandlerError.
    ├── variables.py         ← VariableStore, $name / ${name} expansion.
    ├── script_parser.py     ← Two-phase parser into Statement nodes.
    ├── interpreter.py       ← ScriptInterpreter, cancellable runs.
    ├── script_store.py      ← In-memory and YAML script stores.
    ├── core_commands.py     ← help, clear, history, echo, about, debug.
    ├── script_commands.py   ← run, script, edit, save, exit-editor.
    └── session.py           ← ConsoleSession, HostContext, OutputLine.

Dependencies
------------
PyYAML for the YAML script store. Everything else is standard library.
"""

from nexus_commands.errors import (
    ConsoleError,
    InvalidRegistration,
    ScriptAlreadyRunning,
    ScriptError,
    ScriptNotFound,
    ScriptRuntimeError,
    ScriptSyntaxError,
)
from nexus_commands.interpreter import ExecutionContext, ScriptInterpreter, ScriptRunResult
from nexus_commands.registry import CommandEntry, CommandRegistry
from nexus_commands.router import CommandNotFound, CommandRouter, HandlerError, Ok
from nexus_commands.script_parser import parse
from nexus_commands.script_store import InMemoryScriptStore, Script, YamlScriptStore
from nexus_commands.session import ConsoleSession, HostContext, OutputLine
from nexus_commands.variables import VariableStore

__all__ = [
    'CommandEntry', 'CommandRegistry', 'CommandRouter',
    'Ok', 'CommandNotFound', 'HandlerError',
    'VariableStore', 'parse',
    'ScriptInterpreter', 'ExecutionContext', 'ScriptRunResult',
    'Script', 'InMemoryScriptStore', 'YamlScriptStore',
    'ConsoleSession', 'HostContext', 'OutputLine',
    'ConsoleError', 'InvalidRegistration', 'ScriptError', 'ScriptSyntaxError',
    'ScriptRuntimeError', 'ScriptAlreadyRunning', 'ScriptNotFound',
]
