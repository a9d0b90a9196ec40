"""
Core console commands: help, clear, history, echo, about, debug.

These only depend on the session's own modules, so they are registered
first and every other command module can rely on them.
"""

from __future__ import annotations

import time

ABOUT_TEXT = """\
╔══════════════════════════════════════╗
║            Nexus Console             ║
╠══════════════════════════════════════╣
║ Command router and script engine     ║
║                                      ║
║ Features:                            ║
║ • Aliased command registry           ║
║ • Execution history                  ║
║ • Scripts with variables, if, for    ║
║ • Terminal and web front ends        ║
║                                      ║
║ Type 'help' for available commands   ║
╚══════════════════════════════════════╝"""


def help_command(args, ctx):
    registry = ctx.module('registry')

    if args:
        entry = registry.resolve(args[0])
        if entry is None:
            raise ValueError(f"No help for unknown command '{args[0]}'")
        lines = [entry.help_text]
        if entry.usage:
            lines.append(f"Usage: {entry.usage}")
        return lines

    groups: dict[str, list] = {}
    for entry in registry.list_commands():
        groups.setdefault(entry.module, []).append(entry)

    lines = ["Available commands:"]
    for module in sorted(groups):
        lines.append("")
        lines.append(f"[{module}]")
        for entry in groups[module]:
            lines.append(f"  {entry.help_text}")
    lines.append("")
    lines.append("Type 'help <command>' for usage.")
    return lines


def clear_command(args, ctx):
    ctx.session.clear_output()


def history_command(args, ctx):
    history = ctx.module('history')

    if args and args[0].lower() == "clear":
        count = history.clear()
        ctx.add_output(f"✅ Cleared {count} history entries", "success")
        return None
    if args:
        raise ValueError("Usage: history [clear]")

    entries = history.entries()
    if not entries:
        return "No command history available."
    width = len(str(len(entries)))
    return [f"{i:>{width + 2}}  {line}" for i, line in enumerate(entries, start=1)]


def echo_command(args, ctx):
    return " ".join(args)


def about_command(args, ctx):
    ctx.add_output(ABOUT_TEXT, "info")


def debug_command(args, ctx):
    features = ctx.features
    action = args[0].lower() if args else ""

    if action == "on":
        features['debug_mode'] = True
        ctx.add_output("Debug mode enabled", "success")
    elif action == "off":
        features['debug_mode'] = False
        ctx.add_output("Debug mode disabled", "success")
    elif action == "stats":
        stats = ctx.session.stats()
        stats['debug_mode'] = features.get('debug_mode', False)
        width = max(len(key) for key in stats)
        return [f"{key.ljust(width)}  {value}" for key, value in stats.items()]
    elif action:
        raise ValueError("Usage: debug [on|off|stats]")
    else:
        state = "ON" if features.get('debug_mode') else "OFF"
        ctx.add_output(f"Debug mode is {state}", "info")


def uptime_command(args, ctx):
    elapsed = int(time.time() - ctx.session.started)
    hours, rest = divmod(elapsed, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"Session uptime: {hours}h {minutes}m {seconds}s"


def register_core_commands(router) -> None:
    router.register("help", help_command, aliases=["h", "?"],
                    description="Show available commands",
                    usage="help [command]")
    router.register("clear", clear_command, aliases=["cls"],
                    description="Clear terminal output")
    router.register("history", history_command,
                    description="Show command history",
                    usage="history [clear]")
    router.register("echo", echo_command,
                    description="Print text",
                    usage="echo <text>")
    router.register("about", about_command,
                    description="About this console")
    router.register("debug", debug_command,
                    description="Toggle debug mode",
                    usage="debug [on|off|stats]")
    router.register("uptime", uptime_command,
                    description="Show session uptime")
