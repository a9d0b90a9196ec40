"""
Tests for the Nexus command registry, router, history and session.

Run with:  python -m pytest nexus_commands/test_commands.py -v
"""

import asyncio

import pytest

from nexus_commands.errors import InvalidRegistration
from nexus_commands.history import HistoryLog
from nexus_commands.registry import CommandRegistry
from nexus_commands.router import (
    CommandNotFound,
    CommandRouter,
    HandlerError,
    Ok,
    split_command_line,
)
from nexus_commands.session import ConsoleSession, OutputLine


def echo_handler(args, ctx):
    return " ".join(args)


def boom_handler(args, ctx):
    raise RuntimeError("kaput")


def texts(session, kind=None):
    return [line.text for line in session.output if kind is None or line.kind == kind]


# ============================================================
# Registry
# ============================================================

class TestCommandRegistry:
    """Registration, aliases and lookup."""

    def test_register_and_resolve(self):
        registry = CommandRegistry()
        entry = registry.register("echo", echo_handler, description="Print text")
        assert registry.resolve("echo") is entry
        assert entry.name == "echo"
        assert entry.module == "core"

    def test_alias_resolves_to_canonical_entry(self):
        registry = CommandRegistry()
        entry = registry.register("help", echo_handler, aliases=["h", "?"])
        assert registry.resolve("h") is entry
        assert registry.resolve("?") is entry
        assert entry.aliases == ("h", "?")

    def test_lookup_is_case_insensitive(self):
        registry = CommandRegistry()
        registry.register("Help", echo_handler, aliases=["H"])
        assert registry.resolve("HELP").name == "help"
        assert registry.resolve("h").name == "help"

    def test_unknown_returns_none(self):
        assert CommandRegistry().resolve("nope") is None

    def test_last_registration_wins(self):
        registry = CommandRegistry()
        registry.register("greet", echo_handler, description="first")
        registry.register("greet", boom_handler, description="second")
        assert registry.resolve("greet").handler is boom_handler
        assert len(registry) == 1

    def test_alias_can_be_repointed(self):
        registry = CommandRegistry()
        registry.register("list", echo_handler, aliases=["ls"])
        registry.register("dir", boom_handler, aliases=["ls"])
        assert registry.resolve("ls").name == "dir"

    def test_empty_name_rejected(self):
        with pytest.raises(InvalidRegistration):
            CommandRegistry().register("", echo_handler)
        with pytest.raises(InvalidRegistration):
            CommandRegistry().register("   ", echo_handler)

    def test_empty_alias_rejected(self):
        with pytest.raises(InvalidRegistration):
            CommandRegistry().register("help", echo_handler, aliases=["h", " "])

    def test_non_callable_handler_rejected(self):
        with pytest.raises(InvalidRegistration):
            CommandRegistry().register("help", "not a function")

    def test_list_commands_is_sorted_and_restartable(self):
        registry = CommandRegistry()
        for name in ("zeta", "alpha", "mid"):
            registry.register(name, echo_handler, aliases=[name[0] * 2])
        listing = registry.list_commands()
        first = [entry.name for entry in listing]
        second = [entry.name for entry in listing]
        assert first == ["alpha", "mid", "zeta"]
        assert first == second
        assert len(listing) == 3

    def test_list_commands_reflects_later_registrations(self):
        registry = CommandRegistry()
        listing = registry.list_commands()
        registry.register("late", echo_handler)
        assert [entry.name for entry in listing] == ["late"]

    def test_suggest_includes_names_and_aliases(self):
        registry = CommandRegistry()
        registry.register("help", echo_handler, aliases=["h"], description="Show help")
        registry.register("history", echo_handler)
        registry.register("echo", echo_handler)
        suggestions = registry.suggest("h")
        assert [s.command for s in suggestions] == ["h", "help", "history"]
        assert suggestions[0].is_alias
        assert suggestions[1].description == "Show help"

    def test_unregister_removes_aliases(self):
        registry = CommandRegistry()
        registry.register("clear", echo_handler, aliases=["cls"])
        assert registry.unregister("cls")
        assert registry.resolve("clear") is None
        assert registry.resolve("cls") is None
        assert not registry.unregister("clear")

    def test_help_text(self):
        registry = CommandRegistry()
        entry = registry.register("clear", echo_handler, aliases=["cls"], description="Clear output")
        assert entry.help_text == "clear (cls) - Clear output"


# ============================================================
# History
# ============================================================

class TestHistoryLog:
    """Append-only history and arrow-key navigation."""

    def test_empty_history_navigation(self):
        history = HistoryLog()
        assert history.previous() is None
        assert history.next() is None

    def test_previous_walks_back_and_clamps(self):
        history = HistoryLog()
        for line in ("one", "two", "three"):
            history.append(line)
        assert history.previous() == "three"
        assert history.previous() == "two"
        assert history.previous() == "one"
        assert history.previous() == "one"

    def test_next_past_end_returns_empty_prompt(self):
        history = HistoryLog()
        history.append("one")
        history.append("two")
        history.previous()
        history.previous()
        assert history.next() == "two"
        assert history.next() == ""
        assert history.next() == ""

    def test_append_resets_cursor(self):
        history = HistoryLog()
        history.append("one")
        history.previous()
        history.append("two")
        assert history.previous() == "two"

    def test_max_entries_drops_oldest(self):
        history = HistoryLog(max_entries=2)
        for line in ("a", "b", "c"):
            history.append(line)
        assert history.entries() == ["b", "c"]

    def test_zero_means_unbounded(self):
        history = HistoryLog(max_entries=0)
        for i in range(50):
            history.append(str(i))
        assert len(history) == 50

    def test_clear(self):
        history = HistoryLog()
        history.append("a")
        history.append("b")
        assert history.clear() == 2
        assert len(history) == 0
        assert history.previous() is None


# ============================================================
# Router
# ============================================================

class TestCommandRouter:
    """Dispatch, result types and history recording."""

    @pytest.fixture
    def router(self):
        router = CommandRouter(context="ctx")
        router.register("echo", echo_handler)
        router.register("boom", boom_handler)
        return router

    def test_split_command_line(self):
        assert split_command_line("  run   daily  now ") == ("run", ["daily", "now"])
        assert split_command_line("   ") == ("", [])

    @pytest.mark.asyncio
    async def test_execute_returns_ok(self, router):
        result = await router.execute("echo hello world")
        assert result == Ok("echo", "hello world")
        assert not result.is_error
        assert result.render() == "hello world"

    @pytest.mark.asyncio
    async def test_alias_dispatches_to_canonical(self):
        router = CommandRouter()
        router.register("help", lambda args, ctx: "helped", aliases=["h", "?"])
        result = await router.execute("?")
        assert result == Ok("help", "helped")

    @pytest.mark.asyncio
    async def test_unknown_command(self, router):
        result = await router.execute("frobnicate now")
        assert result == CommandNotFound("frobnicate")
        assert result.is_error
        assert result.render() == "Unknown command: frobnicate. Type 'help' for available commands."

    @pytest.mark.asyncio
    async def test_handler_error_is_contained(self, router):
        result = await router.execute("boom")
        assert result == HandlerError("boom", "kaput")
        assert result.render() == "Error executing boom: kaput"
        assert await router.execute("echo still alive") == Ok("echo", "still alive")

    @pytest.mark.asyncio
    async def test_handler_receives_args_and_context(self):
        seen = []
        router = CommandRouter(context="the-context")
        router.register("spy", lambda args, ctx: seen.append((args, ctx)))
        await router.execute("spy a b")
        assert seen == [(["a", "b"], "the-context")]

    @pytest.mark.asyncio
    async def test_async_handler_is_awaited(self):
        async def slow(args, ctx):
            await asyncio.sleep(0)
            return "done"

        router = CommandRouter()
        router.register("slow", slow)
        assert await router.execute("slow") == Ok("slow", "done")

    @pytest.mark.asyncio
    async def test_none_output_renders_nothing(self):
        router = CommandRouter()
        router.register("quiet", lambda args, ctx: None)
        result = await router.execute("quiet")
        assert result == Ok("quiet", None)
        assert result.render() is None

    def test_list_output_renders_lines(self):
        assert Ok("x", ["a", "b"]).render() == "a\nb"
        assert Ok("x", "").render() is None

    @pytest.mark.asyncio
    async def test_history_grows_by_one_per_execute(self, router):
        for line in ("echo a", "nope", "boom", "echo a"):
            before = len(router.history)
            await router.execute(line)
            assert len(router.history) == before + 1
        assert router.history.entries() == ["echo a", "nope", "boom", "echo a"]

    @pytest.mark.asyncio
    async def test_history_keeps_the_raw_line(self, router):
        result = await router.execute("  echo   a  ")
        assert result == Ok("echo", "a")
        assert router.history.entries() == ["  echo   a  "]

    @pytest.mark.asyncio
    async def test_blank_line_is_ignored(self, router):
        assert await router.execute("   ") is None
        assert len(router.history) == 0

    @pytest.mark.asyncio
    async def test_history_navigation_through_router(self, router):
        await router.execute("echo 1")
        await router.execute("echo 2")
        assert router.previous() == "echo 2"
        assert router.previous() == "echo 1"
        assert router.next() == "echo 2"
        assert router.next() == ""


# ============================================================
# Session and core commands
# ============================================================

class TestConsoleSession:
    """End-to-end through ConsoleSession.submit()."""

    @pytest.fixture
    def session(self):
        return ConsoleSession()

    @pytest.mark.asyncio
    async def test_submit_echoes_command_and_output(self, session):
        await session.submit("echo hi there")
        assert session.output[-2] == OutputLine("nexus$ echo hi there", "command")
        assert session.output[-1] == OutputLine("hi there", "output")

    @pytest.mark.asyncio
    async def test_unknown_command_is_reported_as_error(self, session):
        result = await session.submit("weather")
        assert isinstance(result, CommandNotFound)
        assert session.output[-1] == OutputLine(
            "Unknown command: weather. Type 'help' for available commands.", "error"
        )

    @pytest.mark.asyncio
    async def test_listeners_receive_output(self, session):
        seen = []
        session.add_listener(seen.append)
        await session.submit("echo ping")
        assert seen[-1] == OutputLine("ping", "output")

    @pytest.mark.asyncio
    async def test_help_groups_by_module(self, session):
        await session.submit("h")
        text = session.output[-1].text
        assert "[core]" in text
        assert "[script]" in text
        assert "help (h, ?) - Show available commands" in text

    @pytest.mark.asyncio
    async def test_help_for_one_command(self, session):
        await session.submit("help run")
        assert "Usage: run <script-name> [args...]" in session.output[-1].text

    @pytest.mark.asyncio
    async def test_help_for_unknown_command_fails(self, session):
        result = await session.submit("help nosuch")
        assert isinstance(result, HandlerError)

    @pytest.mark.asyncio
    async def test_clear_empties_output(self, session):
        seen = []
        session.add_listener(seen.append)
        await session.submit("echo something")
        await session.submit("cls")
        assert session.output == []
        assert seen[-1].kind == "clear"

    @pytest.mark.asyncio
    async def test_history_command(self, session):
        await session.submit("echo a")
        await session.submit("history")
        assert session.output[-1].text.splitlines() == ["  1  echo a", "  2  history"]

    @pytest.mark.asyncio
    async def test_history_clear(self, session):
        await session.submit("echo a")
        await session.submit("history clear")
        assert len(session.history) == 0
        assert session.output[-1] == OutputLine("✅ Cleared 2 history entries", "success")

    @pytest.mark.asyncio
    async def test_debug_toggles_feature_flag(self, session):
        await session.submit("debug on")
        assert session.features['debug_mode'] is True
        await session.submit("debug")
        assert session.output[-1].text == "Debug mode is ON"
        await session.submit("debug off")
        assert session.features['debug_mode'] is False

    @pytest.mark.asyncio
    async def test_debug_stats(self, session):
        await session.submit("debug stats")
        text = session.output[-1].text
        assert "commands" in text
        assert "debug_mode" in text

    @pytest.mark.asyncio
    async def test_about(self, session):
        await session.submit("about")
        assert "Nexus Console" in session.output[-1].text
        assert session.output[-1].kind == "info"

    @pytest.mark.asyncio
    async def test_history_navigation(self, session):
        await session.submit("echo 1")
        await session.submit("echo 2")
        assert session.history_previous() == "echo 2"
        assert session.history_next() == ""

    def test_completion(self, session):
        commands = [s.command for s in session.complete("ex")]
        assert commands == ["exec", "exit-editor"]

    @pytest.mark.asyncio
    async def test_startup_commands(self):
        from types import SimpleNamespace
        config = SimpleNamespace(console=SimpleNamespace(startup_commands=["echo booted"]))
        session = ConsoleSession(config)
        await session.start()
        assert session.output[-1] == OutputLine("booted", "output")

    @pytest.mark.asyncio
    async def test_sessions_share_nothing(self):
        first = ConsoleSession()
        second = ConsoleSession()
        first.router.register("only-here", echo_handler)
        await first.submit("echo a")
        assert "only-here" not in second.registry
        assert len(second.history) == 0
        await second.submit("debug on")
        assert first.features['debug_mode'] is False


# ============================================================
# Editor mode
# ============================================================

class TestEditorMode:
    """Lines typed while the editor is open go to the buffer."""

    @pytest.fixture
    def session(self):
        return ConsoleSession()

    @pytest.mark.asyncio
    async def test_edit_new_script_uses_template(self, session):
        await session.submit("edit notes")
        assert session.editor.is_open
        assert session.editor.is_new
        assert session.editor.buffer[0] == "#!/bin/nexus-sh"
        assert session.store.get("notes") is None

    @pytest.mark.asyncio
    async def test_buffer_lines_bypass_router_and_history(self, session):
        await session.submit("edit notes")
        before = len(session.history)
        result = await session.submit("echo from editor")
        assert result is None
        assert len(session.history) == before
        assert session.editor.buffer[-1] == "echo from editor"

    @pytest.mark.asyncio
    async def test_save_and_run(self, session):
        await session.submit("edit notes")
        await session.submit(":clear")
        await session.submit("set who=editor")
        await session.submit("echo hello $who")
        await session.submit("save")
        assert session.store.get("notes").content == "set who=editor\necho hello $who\n"
        await session.submit(":q")
        assert not session.editor.is_open

        await session.submit("run notes")
        assert "hello editor" in texts(session, "output")

    @pytest.mark.asyncio
    async def test_save_under_new_name(self, session):
        await session.submit("edit hello-world")
        await session.submit(":w copy")
        assert session.store.get("copy").content == session.store.get("hello-world").content

    @pytest.mark.asyncio
    async def test_exit_without_save_discards(self, session):
        original = session.store.get("hello-world").content
        await session.submit("vim hello-world")
        await session.submit("echo extra")
        await session.submit("exit-editor")
        assert session.store.get("hello-world").content == original

    @pytest.mark.asyncio
    async def test_show_buffer(self, session):
        await session.submit("nano hello-world")
        await session.submit(":show")
        assert session.output[-1].text.splitlines()[0] == "  1| #!/bin/nexus-sh"

    @pytest.mark.asyncio
    async def test_editor_commands_without_editor(self, session):
        await session.submit("save")
        assert session.output[-1] == OutputLine("❌ No editor session active", "error")
        await session.submit(":q")
        assert session.output[-1] == OutputLine("❌ No editor session active", "error")

    @pytest.mark.asyncio
    async def test_exit_is_not_an_editor_alias(self, session):
        result = await session.submit("exit")
        assert result == CommandNotFound("exit")
        assert session.output[-1].kind == "error"
        assert "No editor session active" not in session.output[-1].text
