"""
Script Store
============

Where saved scripts live. The store exclusively owns script bodies;
the editor only ever holds a copy until 'save'.

Two backends share one small contract:

    get(name) -> Script | None
    put(script)
    delete(name) -> bool
    list() -> list[Script]

export_script() and import_scripts() move scripts in and out as YAML
text in the same per-script shape as the file below.

InMemoryScriptStore keeps scripts for the lifetime of the session.
YamlScriptStore mirrors them to a YAML file after every change, so
scripts survive a restart:

    scripts:
      - name: hello-world
        content: "echo Hello, World!\\n"
        description: Built-in example
        created: "2026-10-19T20:04:00+00:00"
        modified: "2026-10-19T20:04:00+00:00"
        executions: 3
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Script:
    """A named, stored script."""
    name: str
    content: str = ""
    description: str = ""
    created: str = field(default_factory=now_iso)
    modified: str = field(default_factory=now_iso)
    executions: int = 0

    @property
    def line_count(self) -> int:
        return len(self.content.splitlines())

    def touch(self) -> None:
        self.modified = now_iso()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for YAML serialization"""
        return {
            'name': self.name,
            'content': self.content,
            'description': self.description,
            'created': self.created,
            'modified': self.modified,
            'executions': self.executions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Script':
        """Create from dictionary (YAML loading)"""
        stamp = now_iso()
        return cls(
            name=str(data['name']),
            content=data.get('content', '') or '',
            description=data.get('description', '') or '',
            created=str(data.get('created', stamp)),
            modified=str(data.get('modified', stamp)),
            executions=int(data.get('executions', 0) or 0),
        )


class InMemoryScriptStore:
    """Scripts kept in a dict, insertion ordered."""

    def __init__(self):
        self._scripts: Dict[str, Script] = {}
        self.logger = logging.getLogger(__name__)

    def get(self, name: str) -> Optional[Script]:
        return self._scripts.get(name)

    def put(self, script: Script) -> None:
        self._scripts[script.name] = script
        self._changed()

    def delete(self, name: str) -> bool:
        if name not in self._scripts:
            return False
        del self._scripts[name]
        self._changed()
        return True

    def list(self) -> list:
        return list(self._scripts.values())

    def __contains__(self, name: str) -> bool:
        return name in self._scripts

    def __len__(self) -> int:
        return len(self._scripts)

    def _changed(self) -> None:
        """Hook for persistent subclasses."""


class YamlScriptStore(InMemoryScriptStore):
    """Script store persisted to a YAML file.

    Args:
        path: YAML file to read at start-up and rewrite on every change.
    """

    def __init__(self, path):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self.logger.info(f"No script file at {self.path}, starting empty")
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
            for item in data.get('scripts', []) or []:
                script = Script.from_dict(item)
                self._scripts[script.name] = script
            self.logger.info(f"Loaded {len(self._scripts)} scripts from {self.path}")
        except Exception as e:
            self.logger.error(f"Error loading scripts from {self.path}: {e}")
            self._scripts.clear()

    def _changed(self) -> None:
        self.save()

    def save(self) -> bool:
        """Write every script to the YAML file."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                f.write("# Nexus console scripts\n")
                yaml.safe_dump(
                    {'scripts': [s.to_dict() for s in self._scripts.values()]},
                    f,
                    default_flow_style=False,
                    sort_keys=False,
                    allow_unicode=True,
                    indent=2,
                )
            return True
        except Exception as e:
            self.logger.error(f"Error saving scripts to {self.path}: {e}")
            return False


# ─── Built-in examples ──────────────────────────────────────────────

EXAMPLE_SCRIPTS = {
    'hello-world': (
        "Prints a greeting",
        "#!/bin/nexus-sh\n"
        "set name=World\n"
        "echo Hello, ${name}!\n"
        "echo This is a sample script.\n",
    ),
    'system-info': (
        "Shows console information",
        "#!/bin/nexus-sh\n"
        "echo === SYSTEM INFORMATION ===\n"
        "terminal about\n"
        "terminal debug stats\n",
    ),
    'daily-routine': (
        "Counts through a routine with pauses",
        "#!/bin/nexus-sh\n"
        "echo Starting daily routine...\n"
        "for step in 1..3\n"
        "  echo Step $step\n"
        "  wait 100\n"
        "done\n"
        "echo Daily routine completed!\n",
    ),
}


def load_example_scripts(store) -> int:
    """Seed the store with the built-in examples. Existing names are kept.

    Returns the number of scripts added.
    """
    added = 0
    for name, (description, content) in EXAMPLE_SCRIPTS.items():
        if store.get(name) is None:
            store.put(Script(name=name, content=content, description=description))
            added += 1
    return added


# ─── Export, import and statistics ──────────────────────────────────

def export_script(script: Script) -> str:
    """YAML text for one script, without its execution count."""
    data = script.to_dict()
    del data['executions']
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def import_scripts(text: str) -> list:
    """Parse exported YAML into fresh Script objects.

    Accepts a single script mapping or a 'scripts:' list, as written by
    export_script() and YamlScriptStore. Imported scripts start with
    zero executions.

    Raises:
        ValueError: the text is not valid YAML or holds no scripts.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"invalid YAML: {e}") from e

    if isinstance(data, dict) and 'scripts' in data:
        items = data['scripts'] or []
    elif isinstance(data, dict):
        items = [data]
    else:
        raise ValueError("expected a script mapping or a 'scripts' list")

    scripts = []
    for item in items:
        if not isinstance(item, dict) or not item.get('name'):
            raise ValueError("every script needs a 'name'")
        script = Script.from_dict(item)
        script.executions = 0
        script.description = script.description or "Imported script"
        scripts.append(script)
    if not scripts:
        raise ValueError("no scripts found")
    return scripts


def script_stats(scripts) -> Dict[str, Any]:
    """Totals over a list of scripts."""
    scripts = list(scripts)
    most_used = max(scripts, key=lambda s: s.executions, default=None)
    total_length = sum(len(s.content) for s in scripts)
    return {
        'total_scripts': len(scripts),
        'total_executions': sum(s.executions for s in scripts),
        'most_used': most_used.name if most_used is not None and most_used.executions else None,
        'average_length': round(total_length / len(scripts)) if scripts else 0,
    }
