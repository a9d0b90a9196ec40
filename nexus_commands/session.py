"""
Console Session
===============

One console instance: one browser tab or one terminal. The session
wires the command system together and is the only thing the outer
surfaces (terminal loop, WebSocket handler) talk to.

    ┌──────────────┐  submit(line)  ┌────────────────┐
    │ nexus.py     │───────────────►│ ConsoleSession │
    │ web_interface│◄───────────────│                │
    └──────────────┘  OutputLine    └───────┬────────┘
                      listeners             │
                             ┌──────────────┼──────────────┐
                             ▼              ▼              ▼
                      CommandRouter   ScriptEditor   ScriptInterpreter
                      (registry,      (open buffer)  (one run at a
                       history)                       time)
                             │                             │
                             └────── ScriptStore ◄─────────┘

Every handler receives the session's HostContext, which is the
narrow view of the session a command is allowed to use: emit output,
read and flip feature flags, and reach sibling modules by name.

Sessions share nothing. Two sessions have two registries, two
histories and two interpreters. The only thing that may be shared is
a persistent script store handed in by the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict

from nexus_commands.core_commands import register_core_commands
from nexus_commands.history import HistoryLog
from nexus_commands.interpreter import ScriptInterpreter
from nexus_commands.registry import CommandRegistry
from nexus_commands.router import CommandRouter
from nexus_commands.script_commands import ScriptEditor, register_script_commands
from nexus_commands.script_store import (
    InMemoryScriptStore,
    YamlScriptStore,
    load_example_scripts,
)

OUTPUT_KINDS = ("command", "output", "info", "success", "error", "debug")

DEFAULT_FEATURES = {
    'debug_mode': False,
    'ai_enabled': False,
    'voice_enabled': False,
    'music_enabled': False,
    'effects_enabled': False,
}


@dataclass(frozen=True)
class OutputLine:
    """One line (or block) of console output.

    kind is one of OUTPUT_KINDS, or "clear" for the control event sent
    when the screen is wiped.
    """
    text: str
    kind: str = "output"


OutputListener = Callable[[OutputLine], Any]


class HostContext:
    """What a command handler gets as its second argument."""

    def __init__(self, session: "ConsoleSession"):
        self.session = session

    @property
    def features(self) -> Dict[str, Any]:
        return self.session.features

    def add_output(self, text: str, kind: str = "output") -> None:
        self.session.add_output(text, kind)

    def module(self, name: str) -> Any:
        """Sibling module by name: 'scripts', 'editor', 'interpreter',
        'history', 'registry' or 'router'. None if unknown."""
        return self.session.modules.get(name)


def _setting(section, name: str, default):
    if section is None:
        return default
    value = getattr(section, name, default)
    return default if value is None else value


class ConsoleSession:
    """A complete console: router, scripts, editor and output log.

    Parameters
    ----------
    config : NexusConsoleConfig, optional
        Anything with 'console', 'router', 'scripts' and 'features'
        attributes shaped like config_manager's sections. Defaults are
        used for whatever is missing.
    store : script store, optional
        Use this store instead of building one from the config. The web
        server passes a shared YamlScriptStore here so that every tab
        sees the same saved scripts.
    """

    def __init__(self, config=None, store=None):
        self.logger = logging.getLogger(__name__)
        self.started = time.time()

        console_cfg = getattr(config, 'console', None)
        router_cfg = getattr(config, 'router', None)
        script_cfg = getattr(config, 'scripts', None)

        self.prompt = _setting(console_cfg, 'prompt', "nexus$ ")
        self.startup_commands = list(_setting(console_cfg, 'startup_commands', []))
        self.features: Dict[str, Any] = dict(DEFAULT_FEATURES)
        self.features.update(getattr(config, 'features', None) or {})

        self.output: list[OutputLine] = []
        self._listeners: list[OutputListener] = []
        self.context = HostContext(self)

        self.history = HistoryLog(_setting(router_cfg, 'max_history', 1000))
        self.registry = CommandRegistry()
        self.router = CommandRouter(self.registry, self.history, self.context)

        if store is None:
            storage_file = _setting(script_cfg, 'storage_file', "")
            store = YamlScriptStore(storage_file) if storage_file else InMemoryScriptStore()
        self.store = store
        if _setting(script_cfg, 'load_examples', True):
            added = load_example_scripts(self.store)
            if added:
                self.logger.debug(f"Seeded {added} example scripts")

        self.interpreter = ScriptInterpreter(
            self.router,
            self.store,
            features=self.features,
            allow_nested_runs=_setting(script_cfg, 'allow_nested_runs', False),
            max_nesting_depth=_setting(script_cfg, 'max_nesting_depth', 4),
            max_wait_ms=_setting(script_cfg, 'max_wait_ms', 60000),
            interrupt_wait=_setting(script_cfg, 'interrupt_wait', False),
            max_loop_items=_setting(script_cfg, 'max_loop_items', 10000),
        )
        self.editor = ScriptEditor(self.store)

        self.modules: Dict[str, Any] = {
            'router': self.router,
            'registry': self.registry,
            'history': self.history,
            'scripts': self.store,
            'interpreter': self.interpreter,
            'editor': self.editor,
        }

        register_core_commands(self.router)
        register_script_commands(self.router)
        self.logger.debug(f"Console session ready with {len(self.registry)} commands")

    # Output

    def add_listener(self, listener: OutputListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: OutputListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_output(self, text: str, kind: str = "output") -> None:
        if kind not in OUTPUT_KINDS:
            self.logger.debug(f"Unknown output kind '{kind}', using 'output'")
            kind = "output"
        self._publish(OutputLine(str(text), kind))

    def clear_output(self) -> None:
        self.output.clear()
        for listener in list(self._listeners):
            listener(OutputLine("", "clear"))

    def _publish(self, line: OutputLine) -> None:
        self.output.append(line)
        for listener in list(self._listeners):
            try:
                listener(line)
            except Exception as e:
                self.logger.error(f"Output listener failed: {e}")
                self.remove_listener(listener)

    # Input

    async def start(self) -> None:
        """Run the configured startup commands, in order."""
        for line in self.startup_commands:
            await self.submit(line)

    async def submit(self, line: str):
        """Handle one line of user input.

        While the editor is open, lines that are not editor commands
        go into the edit buffer and never reach the router or history.

        Returns the router result, or None when nothing was routed.
        """
        text = (line or "").rstrip("\r\n")

        if self.editor.is_open and not self._is_editor_command(text):
            number = self.editor.feed(text)
            self.add_output(f"{number:3d}| {text}", "info")
            return None

        if not text.strip():
            return None

        self.add_output(f"{self.prompt}{text.strip()}", "command")
        result = await self.router.execute(text)
        self.render(result)
        return result

    def render(self, result) -> None:
        if result is None:
            return
        text = result.render()
        if text:
            self.add_output(text, "error" if result.is_error else "output")

    def _is_editor_command(self, text: str) -> bool:
        words = text.split()
        if not words:
            return False
        entry = self.registry.resolve(words[0])
        return entry is not None and entry.module == "editor"

    # Navigation

    def history_previous(self) -> str:
        return self.router.previous() or ""

    def history_next(self) -> str:
        return self.router.next() or ""

    def complete(self, partial: str) -> list:
        return self.router.suggestions(partial)

    def stats(self) -> Dict[str, Any]:
        return {
            'commands': len(self.registry),
            'history': len(self.history),
            'scripts': len(self.store),
            'output_lines': len(self.output),
            'script_running': self.interpreter.is_running,
            'uptime': round(time.time() - self.started, 1),
        }
