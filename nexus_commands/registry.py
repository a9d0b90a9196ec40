"""
Command Registry
================

The table of everything the console knows how to do.

Each command is a CommandEntry: a canonical name, a handler, and some
metadata for help listings. Aliases are a second lookup table that
points alternate spellings at the canonical name, so one entry can be
reached as 'help', 'h' or '?'.

    register("help", show_help, aliases=["h", "?"])

        _entries:  {"help": CommandEntry(...)}
        _lookup:   {"help": "help", "h": "help", "?": "help"}

    resolve("H")  →  "h"  →  "help"  →  CommandEntry

Design Decisions
----------------
- Names and aliases are case-insensitive. They are stored lower-cased
  and looked up lower-cased.
- Last registration wins. Registering an existing name or alias simply
  repoints it. Command modules are expected to register in dependency
  order, once per command.
- There is no module-level registry. Every CommandRouter owns its own,
  so two console sessions (or two tests) never see each other's
  commands.

Handler Contract
----------------
    handler(args: list[str], ctx: HostContext) -> result | None

The handler may be a plain function or a coroutine function. Returning
None means "nothing to show". Raising is the documented way to fail;
the router turns the exception into a HandlerError result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Optional

from nexus_commands.errors import InvalidRegistration

Handler = Callable[[list, Any], Any]


@dataclass(frozen=True)
class CommandEntry:
    """One registered command.

    Attributes
    ----------
    name : str
        Canonical, lower-cased command name.
    handler : callable
        ``handler(args, ctx)``; sync or async.
    aliases : tuple[str, ...]
        Alternate names resolving to this entry.
    description : str
        One-line description for help listings.
    usage : str
        Usage hint, e.g. "run <script-name>".
    module : str
        Which command module registered it. Informational only; help
        groups commands by it.
    """
    name: str
    handler: Handler
    aliases: tuple[str, ...] = ()
    description: str = ""
    usage: str = ""
    module: str = "core"

    @property
    def help_text(self) -> str:
        """'name (aliases) - description' for listings."""
        alias_str = f" ({', '.join(self.aliases)})" if self.aliases else ""
        return f"{self.name}{alias_str} - {self.description}"


@dataclass(frozen=True)
class Suggestion:
    """A tab-completion candidate."""
    command: str
    description: str = ""
    is_alias: bool = False


class CommandListing:
    """Lazy, restartable view over the registry's entries.

    Iterating walks a sorted snapshot taken at iteration time, so it
    can be iterated any number of times and always reflects the
    current registry.
    """

    def __init__(self, registry: "CommandRegistry"):
        self._registry = registry

    def __iter__(self) -> Iterator[CommandEntry]:
        for name in sorted(self._registry._entries):
            yield self._registry._entries[name]

    def __len__(self) -> int:
        return len(self._registry._entries)


class CommandRegistry:
    """Maps command names and aliases to CommandEntry objects."""

    def __init__(self):
        self._entries: dict[str, CommandEntry] = {}
        self._lookup: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: Handler,
        aliases: Iterable[str] = (),
        description: str = "",
        usage: str = "",
        module: str = "core",
    ) -> CommandEntry:
        """Register a command handler.

        Parameters
        ----------
        name : str
            Canonical command name.
        handler : callable
            ``handler(args, ctx)``, sync or async.
        aliases : iterable of str
            Alternate names for the same command.
        description, usage, module : str
            Help metadata.

        Returns
        -------
        CommandEntry
            The stored entry.

        Raises
        ------
        InvalidRegistration
            If the name or an alias is empty, or the handler is not
            callable.
        """
        key = self._normalize(name)
        if not key:
            raise InvalidRegistration("Command name must not be empty")
        if not callable(handler):
            raise InvalidRegistration(f"Handler for '{key}' is not callable")

        alias_keys = []
        for alias in aliases or ():
            alias_key = self._normalize(alias)
            if not alias_key:
                raise InvalidRegistration(f"Empty alias for command '{key}'")
            if alias_key != key and alias_key not in alias_keys:
                alias_keys.append(alias_key)

        entry = CommandEntry(
            name=key,
            handler=handler,
            aliases=tuple(alias_keys),
            description=description,
            usage=usage,
            module=module,
        )
        self._entries[key] = entry
        self._lookup[key] = key
        for alias_key in alias_keys:
            self._lookup[alias_key] = key
        return entry

    def unregister(self, name: str) -> bool:
        """Remove a command and every alias pointing at it."""
        key = self._lookup.get(self._normalize(name))
        if key is None or key not in self._entries:
            return False
        del self._entries[key]
        self._lookup = {k: v for k, v in self._lookup.items() if v != key}
        return True

    def resolve(self, name: str) -> Optional[CommandEntry]:
        """Look up a command by name or alias. None if unknown."""
        canonical = self._lookup.get(self._normalize(name))
        if canonical is None:
            return None
        return self._entries.get(canonical)

    def list_commands(self) -> CommandListing:
        """All entries, one per canonical name, sorted by name."""
        return CommandListing(self)

    def suggest(self, partial: str) -> list[Suggestion]:
        """Completion candidates for a partially typed command word."""
        prefix = self._normalize(partial)
        suggestions = []
        for key, canonical in self._lookup.items():
            if not key.startswith(prefix):
                continue
            if key == canonical:
                entry = self._entries[key]
                suggestions.append(Suggestion(key, entry.description))
            else:
                suggestions.append(Suggestion(key, f"Alias for {canonical}", is_alias=True))
        return sorted(suggestions, key=lambda s: s.command)

    def __contains__(self, name: str) -> bool:
        return self.resolve(name) is not None

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _normalize(name: str) -> str:
        return (name or "").strip().lower()
