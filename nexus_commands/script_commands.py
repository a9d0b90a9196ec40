"""
Script Commands
===============

The console surface of the script engine.

    run <name> [args...]          execute a stored script (alias: exec)
    script list                   list stored scripts
    script create <name>          create from the template
    script delete <name>
    script info <name>
    script run <name> [args...]
    script stop                   stop the running script
    script status                 what is running right now
    script export <name> [file]   print the script as YAML, or write it
    script import <file>          load scripts exported as YAML
    script stats                  totals over all stored scripts
    edit <name>                   open the editor (aliases: nano, vim)
    save [name]                   write the edit buffer (alias: :w)
    exit-editor                   close without saving (alias: :q)
    :show / :clear                print / empty the edit buffer

Editor Mode
-----------
'edit' opens a ScriptEditor on a COPY of the script. While it is open
the session feeds every line that is not one of the editor commands
above into the buffer. The store is only touched by 'save'.

Commands in the "editor" module are the ones that stay live in editor
mode; ConsoleSession checks the registry for that, so adding an editor
command is just a register() call with module="editor".

Messages follow one convention: failures are "❌ ..." lines of kind
"error", successes "✅ ..." lines of kind "success".
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from nexus_commands.errors import ScriptError
from nexus_commands.script_parser import count_statements, parse
from nexus_commands.script_store import (
    Script, export_script, import_scripts, now_iso, script_stats,
)

SCRIPT_BANNER = """\
╔══════════════════════════════════════════════════════════╗
║                   SCRIPT ENGINE                          ║
╠══════════════════════════════════════════════════════════╣
║  Commands:                                               ║
║    script list           - List all scripts              ║
║    script create <name>  - Create new script             ║
║    script run <name>     - Run a script                  ║
║    script delete <name>  - Delete a script               ║
║    script info <name>    - Show script details           ║
║    script stop           - Stop the running script       ║
║    script status         - Show the running script       ║
║    script export <name>  - Export a script as YAML       ║
║    script import <file>  - Import scripts from YAML      ║
║    script stats          - Script statistics             ║
║                                                          ║
║  Quick commands:                                         ║
║    run <name>            - Execute script                ║
║    edit <name>           - Edit script in editor         ║
╚══════════════════════════════════════════════════════════╝"""

EDITOR_BANNER = """\
╔══════════════════════════════════════════════════════════╗
║                   SCRIPT EDITOR                          ║
╠══════════════════════════════════════════════════════════╣
║  Type lines to append them to the script.                ║
║    :show            - Show the buffer                    ║
║    :clear           - Empty the buffer                   ║
║    save [name]      - Save changes (also :w)             ║
║    :q, exit-editor  - Exit editor                        ║
╚══════════════════════════════════════════════════════════╝"""


def script_template(name: str) -> str:
    return (
        "#!/bin/nexus-sh\n"
        f"# Script: {name}\n"
        f"# Created: {now_iso()}\n"
        "\n"
        f"echo \"Hello from {name}!\"\n"
        "echo \"This is a sample script.\"\n"
        "\n"
        "# Available commands:\n"
        "# echo <text>        - Print text\n"
        "# wait <ms>          - Wait (sleep <seconds> also works)\n"
        "# terminal <command> - Execute terminal command\n"
        "# set name=value     - Set variable (also: var)\n"
        "# if/else/endif      - Conditionals\n"
        "# for/done           - Loops\n"
        "# while/done         - Loop while a condition holds\n"
        "# repeat <n> <cmd>   - Run a command n times\n"
        "# function/endfunction - Define a function\n"
    )


# ─── Editor ─────────────────────────────────────────────────────────

class ScriptEditor:
    """Line buffer for one script being edited.

    Holds a transient copy of the script body; nothing reaches the
    store until save().
    """

    def __init__(self, store):
        self.store = store
        self.name: Optional[str] = None
        self.buffer: list[str] = []
        self.is_new = False

    @property
    def is_open(self) -> bool:
        return self.name is not None

    def open(self, name: str) -> bool:
        """Load name into the buffer. Returns True if it is a new script."""
        existing = self.store.get(name)
        self.name = name
        self.is_new = existing is None
        content = script_template(name) if existing is None else existing.content
        self.buffer = content.splitlines()
        return self.is_new

    def feed(self, line: str) -> int:
        """Append a line. Returns the new line count."""
        self.buffer.append(line)
        return len(self.buffer)

    def clear(self) -> None:
        self.buffer = []

    @property
    def content(self) -> str:
        return "\n".join(self.buffer) + "\n" if self.buffer else ""

    def numbered(self) -> list[str]:
        return [f"{i:3d}| {line}" for i, line in enumerate(self.buffer, start=1)]

    def save(self, name: Optional[str] = None) -> Script:
        """Write the buffer to the store, optionally under a new name."""
        if not self.is_open:
            raise ScriptError("no editor session active")
        target = name or self.name
        script = self.store.get(target)
        if script is None:
            script = Script(name=target, content=self.content)
        else:
            script.content = self.content
            script.touch()
        self.store.put(script)
        self.name = target
        self.is_new = False
        return script

    def close(self) -> Optional[str]:
        name, self.name = self.name, None
        self.buffer = []
        self.is_new = False
        return name


# ─── Helpers ────────────────────────────────────────────────────────

def _fail(ctx, message: str) -> None:
    ctx.add_output(f"❌ {message}", "error")


def _ok(ctx, message: str) -> None:
    ctx.add_output(f"✅ {message}", "success")


def _format_time(stamp: str) -> str:
    try:
        return datetime.fromisoformat(stamp).strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return stamp


async def _run_script(name: str, args, ctx) -> None:
    interpreter = ctx.module('interpreter')
    store = ctx.module('scripts')

    if store.get(name) is not None and not interpreter.is_running:
        ctx.add_output(f"🚀 Running script: {name}", "info")

    result = await interpreter.run_stored(name, args, sink=ctx.add_output)
    if result.is_error:
        ctx.add_output(result.summary(), "error")
    elif result.cancelled:
        ctx.add_output(result.summary(), "info")
    else:
        ctx.add_output(result.summary(), "success")


# ─── Handlers ───────────────────────────────────────────────────────

async def run_command(args, ctx):
    if not args:
        return "Usage: run <script-name> [args...]\nExample: run hello-world"
    await _run_script(args[0], args[1:], ctx)


async def script_command(args, ctx):
    action = args[0].lower() if args else ""
    name = args[1] if len(args) > 1 else None
    store = ctx.module('scripts')
    interpreter = ctx.module('interpreter')

    if action == "list":
        scripts = store.list()
        if not scripts:
            return ("No scripts available. Create one with:\n"
                    "  script create <name>\n"
                    "  edit <name>")
        lines = ["Available scripts:"]
        for script in scripts:
            lines.append(f"  📜 {script.name}")
            lines.append(
                f"     Lines: {script.line_count}  Size: {len(script.content)}b  "
                f"Runs: {script.executions}  Created: {_format_time(script.created)}"
            )
        return lines

    if action in ("create", "delete", "info", "run", "export", "import") and not name:
        usage = {
            "run": "run <name>",
            "export": "script export <name> [file]",
            "import": "script import <file>",
        }.get(action, f"script {action} <name>")
        if action == "import":
            _fail(ctx, f"File name required. Usage: {usage}")
            return None
        _fail(ctx, f"Script name required. Usage: {usage}")
        return None

    if action == "create":
        if store.get(name) is not None:
            _fail(ctx, f"Script \"{name}\" already exists. Use 'edit {name}' to modify it.")
            return None
        store.put(Script(name=name, content=script_template(name)))
        _ok(ctx, f"Script \"{name}\" created. Use 'edit {name}' to modify it.")
        return None

    if action == "delete":
        if not store.delete(name):
            _fail(ctx, f"Script \"{name}\" not found")
            return None
        _ok(ctx, f"Script \"{name}\" deleted")
        return None

    if action == "info":
        script = store.get(name)
        if script is None:
            _fail(ctx, f"Script \"{name}\" not found")
            return None
        try:
            statements = parse(script.content)
            parsed = f"{count_statements(statements)} statements"
        except ScriptError as e:
            parsed = f"syntax error at {e.format()}"
        return [
            f"Name:        {script.name}",
            f"Description: {script.description or '-'}",
            f"Lines:       {script.line_count}",
            f"Words:       {len(script.content.split())}",
            f"Characters:  {len(script.content)}",
            f"Parsed:      {parsed}",
            f"Executions:  {script.executions}",
            f"Created:     {_format_time(script.created)}",
            f"Modified:    {_format_time(script.modified)}",
        ]

    if action == "run":
        await _run_script(name, args[2:], ctx)
        return None

    if action == "stop":
        if not interpreter.stop():
            _fail(ctx, "No script is running")
            return None
        ctx.add_output("⏹️  Stop requested, the script will halt after its current statement", "info")
        return None

    if action == "export":
        script = store.get(name)
        if script is None:
            _fail(ctx, f"Script \"{name}\" not found")
            return None
        text = export_script(script)
        if len(args) < 3:
            return text.rstrip("\n").splitlines()
        try:
            Path(args[2]).write_text(text, encoding="utf-8")
        except OSError as e:
            _fail(ctx, f"Could not write {args[2]}: {e}")
            return None
        _ok(ctx, f"Script \"{name}\" exported to {args[2]}")
        return None

    if action == "import":
        try:
            scripts = import_scripts(Path(name).read_text(encoding="utf-8"))
        except OSError as e:
            _fail(ctx, f"Could not read {name}: {e}")
            return None
        except ValueError as e:
            _fail(ctx, f"Import failed: {e}")
            return None
        for script in scripts:
            store.put(script)
        names = ", ".join(script.name for script in scripts)
        _ok(ctx, f"Imported {len(scripts)} script(s): {names}")
        return None

    if action == "stats":
        stats = script_stats(store.list())
        return [
            f"Total scripts:    {stats['total_scripts']}",
            f"Total executions: {stats['total_executions']}",
            f"Most used:        {stats['most_used'] or 'None'}",
            f"Average length:   {stats['average_length']} characters",
        ]

    if action == "status":
        status = interpreter.status()
        if status is None:
            return "No script is running"
        return (f"Running \"{status['name']}\" for {status['elapsed']:.1f}s, "
                f"line {status['line']}, {status['statements']} statements executed")

    return SCRIPT_BANNER + f"\n  Scripts: {len(store)} loaded"


def edit_command(args, ctx):
    if not args:
        return "Usage: edit <script-name>\nExample: edit my-script"
    editor = ctx.module('editor')
    if editor.is_open:
        _fail(ctx, f"Already editing \"{editor.name}\". Use 'save' or ':q' first.")
        return None

    created = editor.open(args[0])
    ctx.add_output(EDITOR_BANNER, "info")
    state = "new script from template" if created else f"{len(editor.buffer)} lines"
    ctx.add_output(f"📝 Editing: {editor.name} ({state})", "info")
    return editor.numbered() + ["[EDITOR MODE] Type your script content..."]


def save_command(args, ctx):
    editor = ctx.module('editor')
    if not editor.is_open:
        _fail(ctx, "No editor session active")
        return None
    script = editor.save(args[0] if args else None)
    _ok(ctx, f"Script \"{script.name}\" saved ({script.line_count} lines)")


def exit_editor_command(args, ctx):
    editor = ctx.module('editor')
    if not editor.is_open:
        _fail(ctx, "No editor session active")
        return None
    editor.close()
    _ok(ctx, "Editor closed")


def show_buffer_command(args, ctx):
    editor = ctx.module('editor')
    if not editor.is_open:
        _fail(ctx, "No editor session active")
        return None
    return editor.numbered() or "(empty buffer)"


def clear_buffer_command(args, ctx):
    editor = ctx.module('editor')
    if not editor.is_open:
        _fail(ctx, "No editor session active")
        return None
    editor.clear()
    _ok(ctx, "Buffer cleared")


def register_script_commands(router) -> None:
    router.register("run", run_command, aliases=["exec"],
                    description="Execute a script",
                    usage="run <script-name> [args...]", module="script")
    router.register("script", script_command,
                    description="Script management",
                    usage="script [list|create|run|delete|info|stop|status|export|import|stats] [name]",
                    module="script")
    router.register("edit", edit_command, aliases=["nano", "vim"],
                    description="Edit script",
                    usage="edit <script-name>", module="script")
    router.register("save", save_command, aliases=[":w"],
                    description="Save current script",
                    usage="save [name]", module="editor")
    router.register("exit-editor", exit_editor_command, aliases=[":q"],
                    description="Exit script editor", module="editor")
    router.register(":show", show_buffer_command,
                    description="Show the edit buffer", module="editor")
    router.register(":clear", clear_buffer_command,
                    description="Empty the edit buffer", module="editor")
