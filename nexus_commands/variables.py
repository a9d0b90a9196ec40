"""
Variable Store
==============

Per-run key/value environment for scripts, with shell-style
substitution.

    store.set("name", "Adrian")
    store.expand("Hello $name, or ${name}!")   →  "Hello Adrian, or Adrian!"
    store.expand("$missing")                   →  ""

Substitution Rules
------------------
    $name      greedy identifier: letters, digits, underscore
    ${name}    same identifier set, explicitly delimited

- Unset variables expand to the empty string, like a shell. Macros
  lean on this for optional values.
- One pass, left to right. Whatever a variable expands to is NOT
  scanned again, so a value containing "$x" stays literal. User
  content can never make expansion loop.
- A '$' that is not followed by an identifier (or a '${' without a
  valid name and closing brace) is left as-is.
"""

from __future__ import annotations

import re
from typing import Dict, Iterator, Optional

IDENTIFIER = re.compile(r'^[A-Za-z0-9_]+$')

_REFERENCE = re.compile(r'\$\{([A-Za-z0-9_]+)\}|\$([A-Za-z0-9_]+)')


def is_identifier(name: str) -> bool:
    """True when name can be referenced as $name."""
    return bool(name) and IDENTIFIER.match(name) is not None


class VariableStore:
    """String variables for one script run."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._variables: Dict[str, str] = {}
        for name, value in (initial or {}).items():
            self.set(name, value)

    def set(self, name: str, value) -> None:
        self._variables[name] = "" if value is None else str(value)

    def get(self, name: str) -> str:
        """Value of name, or "" when unset."""
        return self._variables.get(name, "")

    def has(self, name: str) -> bool:
        return name in self._variables

    def unset(self, name: str) -> None:
        self._variables.pop(name, None)

    def snapshot(self) -> Dict[str, str]:
        """Copy of all current bindings."""
        return dict(self._variables)

    def expand(self, text: str) -> str:
        """Substitute $name and ${name} references in one pass."""
        if not text or "$" not in text:
            return text

        def substitute(match: re.Match) -> str:
            return self.get(match.group(1) or match.group(2))

        return _REFERENCE.sub(substitute, text)

    def __len__(self) -> int:
        return len(self._variables)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._variables))

    def __repr__(self) -> str:
        return f"VariableStore({self._variables})"
