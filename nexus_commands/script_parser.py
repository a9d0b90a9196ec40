"""
Script Parser
=============

Converts script text into a tree of Statement nodes before anything
runs. A script either parses completely or not at all: a missing
'endif' on line 40 is reported before line 1 executes.

Script Language
---------------
    #!/bin/nexus-sh               comment (any line starting with #)
    set name=Adrian               variable assignment (also: var)
    echo Hello ${name}            print a line
    wait 500                      pause, milliseconds
    sleep 2                       pause, seconds
    terminal weather              run a console command explicitly
    if $name == Adrian            conditional block
      echo hi
    else
      echo who?
    endif
    for i in 1 2 3                loop over items (also: 1..3)
      echo $i
    done
    while $n != 3                 loop while the condition holds
      set n=3
    done
    repeat 3 echo hi              run one command N times
    function greet who            define a function, then call it
      echo Hello $who             like a command: greet Adrian
    endfunction
    help                          anything else is a console command

Two Phases
----------
1. tokenize()   every non-blank line becomes a Token: (line number,
                keyword, argument text). Lines whose first word is not a
                keyword become 'raw' tokens.
2. build        a stack of open frames matches if/else/endif,
                for/done, while/done and function/endfunction. Entering
                a block pushes a frame; 'else' flips the top frame to its
                else branch (only when the top frame is an 'if'); a closer
                pops a frame of the matching type. Anything left on the
                stack at the end is an error naming the line that opened
                it.

Variable references are NOT resolved here. Statements keep their raw
text and the interpreter expands it at execution time, so a statement
in a skipped branch never has any effect.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union

from nexus_commands.errors import ScriptSyntaxError
from nexus_commands.variables import is_identifier


# ─── Statement nodes ────────────────────────────────────────────────

@dataclass(frozen=True)
class Echo:
    line: int
    text: str


@dataclass(frozen=True)
class Set:
    """Assignment. 'name' may itself contain variable references."""
    line: int
    name: str
    expr: str


@dataclass(frozen=True)
class Wait:
    """Pause. 'duration' is unexpanded text; unit is 'ms' or 's'."""
    line: int
    duration: str
    unit: str = "ms"


@dataclass(frozen=True)
class Terminal:
    line: int
    command_line: str


@dataclass(frozen=True)
class If:
    line: int
    condition: str
    then_block: tuple = ()
    else_block: tuple = ()


@dataclass(frozen=True)
class For:
    line: int
    var: str
    items: str
    body: tuple = ()


@dataclass(frozen=True)
class While:
    line: int
    condition: str
    body: tuple = ()


@dataclass(frozen=True)
class Repeat:
    """Run one command line 'count' times. 'count' is unexpanded text."""
    line: int
    count: str
    command_line: str


@dataclass(frozen=True)
class Function:
    """Definition only. It takes effect when the statement executes."""
    line: int
    name: str
    params: tuple = ()
    body: tuple = ()


@dataclass(frozen=True)
class Comment:
    line: int
    text: str


@dataclass(frozen=True)
class Raw:
    """A line that is not a keyword: routed as an ordinary command."""
    line: int
    command_line: str


Statement = Union[
    Echo, Set, Wait, Terminal, If, For, While, Repeat, Function, Comment, Raw
]


# ─── Phase 1: tokenize ──────────────────────────────────────────────

KEYWORDS = frozenset({
    "if", "else", "endif", "for", "while", "done",
    "function", "endfunction", "repeat",
    "set", "var", "echo", "wait", "sleep", "terminal",
})

# Closer for each block opener.
CLOSERS = {"if": "endif", "for": "done", "while": "done", "function": "endfunction"}


@dataclass(frozen=True)
class Token:
    line: int
    keyword: str      # one of KEYWORDS, 'comment' or 'raw'
    arg: str          # text after the keyword (whole line for raw)


def tokenize(text: str, keep_comments: bool = False) -> list[Token]:
    """Split script text into one Token per meaningful line."""
    tokens = []
    for line_no, raw_line in enumerate((text or "").splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#"):
            if keep_comments:
                tokens.append(Token(line_no, "comment", line))
            continue

        parts = line.split(None, 1)
        word = parts[0]
        rest = parts[1].strip() if len(parts) > 1 else ""
        if word in KEYWORDS:
            tokens.append(Token(line_no, word, rest))
        else:
            tokens.append(Token(line_no, "raw", line))
    return tokens


# ─── Phase 2: build blocks ──────────────────────────────────────────

_FOR_HEADER = re.compile(r'^(\S+)\s+in\b(.*)$')
_TRAILING_DO = re.compile(r';\s*do$')
_TRAILING_THEN = re.compile(r';\s*then$')


@dataclass
class _Frame:
    """An open block waiting for its closer."""
    keyword: str
    token: Token
    header: dict
    body: list = field(default_factory=list)
    else_body: list = field(default_factory=list)
    in_else: bool = False

    def target(self) -> list:
        return self.else_body if self.in_else else self.body


def parse(text: str, keep_comments: bool = False) -> tuple:
    """Parse script text into a tuple of Statements.

    Parameters
    ----------
    text : str
        Raw script content.
    keep_comments : bool
        Emit Comment nodes instead of dropping comment lines.

    Returns
    -------
    tuple of Statement

    Raises
    ------
    ScriptSyntaxError
        On any unmatched or malformed block. Nothing is returned in
        that case; the caller must not execute a partial script.
    """
    root: list = []
    stack: list[_Frame] = []

    def current() -> list:
        return stack[-1].target() if stack else root

    for token in tokenize(text, keep_comments=keep_comments):
        kw = token.keyword

        if kw == "if":
            condition = _strip_condition(token.arg)
            if not condition:
                raise ScriptSyntaxError("'if' requires a condition", token.line, "if")
            stack.append(_Frame("if", token, {"condition": condition}))

        elif kw == "for":
            var, items = _parse_for_header(token)
            stack.append(_Frame("for", token, {"var": var, "items": items}))

        elif kw == "while":
            condition = _strip_condition(_TRAILING_DO.sub("", token.arg).strip())
            if not condition:
                raise ScriptSyntaxError("'while' requires a condition", token.line, "while")
            stack.append(_Frame("while", token, {"condition": condition}))

        elif kw == "function":
            name, params = _parse_function_header(token)
            stack.append(_Frame("function", token, {"name": name, "params": params}))

        elif kw == "else":
            _expect_no_argument(token)
            if not stack or stack[-1].keyword != "if":
                raise ScriptSyntaxError("'else' without matching 'if'", token.line, "else")
            if stack[-1].in_else:
                raise ScriptSyntaxError("duplicate 'else' in 'if' block", token.line, "else")
            stack[-1].in_else = True

        elif kw == "endif":
            _expect_no_argument(token)
            if not stack or stack[-1].keyword != "if":
                raise ScriptSyntaxError("'endif' without matching 'if'", token.line, "endif")
            frame = stack.pop()
            current().append(If(
                line=frame.token.line,
                condition=frame.header["condition"],
                then_block=tuple(frame.body),
                else_block=tuple(frame.else_body),
            ))

        elif kw == "done":
            _expect_no_argument(token)
            if not stack or stack[-1].keyword not in ("for", "while"):
                raise ScriptSyntaxError(
                    "'done' without matching 'for' or 'while'", token.line, "done"
                )
            frame = stack.pop()
            if frame.keyword == "for":
                current().append(For(
                    line=frame.token.line,
                    var=frame.header["var"],
                    items=frame.header["items"],
                    body=tuple(frame.body),
                ))
            else:
                current().append(While(
                    line=frame.token.line,
                    condition=frame.header["condition"],
                    body=tuple(frame.body),
                ))

        elif kw == "endfunction":
            _expect_no_argument(token)
            if not stack or stack[-1].keyword != "function":
                raise ScriptSyntaxError(
                    "'endfunction' without matching 'function'", token.line, "endfunction"
                )
            frame = stack.pop()
            current().append(Function(
                line=frame.token.line,
                name=frame.header["name"],
                params=frame.header["params"],
                body=tuple(frame.body),
            ))

        else:
            current().append(_simple_statement(token))

    if stack:
        frame = stack[-1]
        closer = CLOSERS[frame.keyword]
        raise ScriptSyntaxError(
            f"'{frame.keyword}' without matching '{closer}'",
            frame.token.line,
            frame.keyword,
        )

    return tuple(root)


def _simple_statement(token: Token) -> Statement:
    kw = token.keyword
    if kw == "echo":
        return Echo(token.line, token.arg)
    if kw in ("set", "var"):
        name, expr = split_assignment(token.arg)
        return Set(token.line, name, expr)
    if kw in ("wait", "sleep"):
        if not token.arg:
            raise ScriptSyntaxError(f"'{kw}' requires a duration", token.line, kw)
        return Wait(token.line, token.arg, "ms" if kw == "wait" else "s")
    if kw == "terminal":
        if not token.arg:
            raise ScriptSyntaxError("'terminal' requires a command", token.line, kw)
        return Terminal(token.line, token.arg)
    if kw == "repeat":
        parts = token.arg.split(None, 1)
        if len(parts) < 2:
            raise ScriptSyntaxError(
                "expected 'repeat <count> <command>'", token.line, kw
            )
        return Repeat(token.line, parts[0], parts[1].strip())
    if kw == "comment":
        return Comment(token.line, token.arg)
    return Raw(token.line, token.arg)


def split_assignment(text: str) -> tuple[str, str]:
    """Split 'name=value', 'name = value' or 'name value'.

    Only an '=' in the first word, or a second word starting with '=',
    selects the assignment form. 'set url http://x/?a=b' keeps the
    '=' in its value.

    The name is not validated here; it may contain variable
    references that only resolve at run time.
    """
    parts = text.split(None, 1)
    if not parts:
        return "", ""
    first = parts[0]
    rest = parts[1].strip() if len(parts) > 1 else ""
    if "=" in first:
        name, expr = text.strip().split("=", 1)
        return name.strip(), expr.strip()
    if rest.startswith("="):
        return first, rest[1:].strip()
    return first, rest


def _parse_function_header(token: Token) -> tuple[str, tuple]:
    words = token.arg.split()
    if not words:
        raise ScriptSyntaxError("'function' requires a name", token.line, "function")
    name, params = words[0], tuple(words[1:])
    if name.endswith("()"):
        name = name[:-2]
    if name in KEYWORDS or not is_identifier(name):
        raise ScriptSyntaxError(
            f"invalid function name '{name}'", token.line, "function"
        )
    for param in params:
        if not is_identifier(param):
            raise ScriptSyntaxError(
                f"invalid parameter name '{param}'", token.line, "function"
            )
    return name, params


def _parse_for_header(token: Token) -> tuple[str, str]:
    match = _FOR_HEADER.match(token.arg)
    if match is None:
        raise ScriptSyntaxError(
            "expected 'for <var> in <items>'", token.line, "for"
        )
    var = match.group(1)
    if not is_identifier(var):
        raise ScriptSyntaxError(
            f"invalid loop variable '{var}'", token.line, "for"
        )
    items = _TRAILING_DO.sub("", match.group(2).strip()).strip()
    return var, items


def _strip_condition(text: str) -> str:
    """Accept shell habits: 'if [ $a == b ]; then' → '$a == b'."""
    condition = _TRAILING_THEN.sub("", text.strip()).strip()
    if condition.startswith("[") and condition.endswith("]"):
        condition = condition[1:-1].strip()
    return condition


def _expect_no_argument(token: Token) -> None:
    if token.arg:
        raise ScriptSyntaxError(
            f"unexpected text after '{token.keyword}': {token.arg}",
            token.line,
            token.keyword,
        )


def count_statements(statements, kinds: Optional[tuple] = None) -> int:
    """Count statements in a parsed tree, including nested blocks."""
    total = 0
    for stmt in statements:
        if kinds is None or isinstance(stmt, kinds):
            total += 1
        if isinstance(stmt, If):
            total += count_statements(stmt.then_block, kinds)
            total += count_statements(stmt.else_block, kinds)
        elif isinstance(stmt, (For, While, Function)):
            total += count_statements(stmt.body, kinds)
    return total
