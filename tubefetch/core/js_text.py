"""
Textual helpers for locating code inside the player script.

Nothing here evaluates script code: these functions only find function
bodies, object literals and top-level separators while respecting string
literals and bracket nesting.
"""

import json
import re

from ..errors import CipherDerivationError

NAME_RE = r"[a-zA-Z_$][\w$]*"

_OPENERS = {"{": "}", "(": ")", "[": "]"}


def find_matching_brace(code: str, start: int) -> str:
    """Return the content between the brace at *start* and its partner."""
    if start >= len(code) or code[start] not in _OPENERS:
        idx = code.find("{", start)
        if idx < 0:
            raise CipherDerivationError("Could not find opening brace")
        start = idx

    opener = code[start]
    closer = _OPENERS[opener]
    depth = 0
    in_string = None
    escape = False

    for i in range(start, len(code)):
        c = code[i]
        if escape:
            escape = False
            continue
        if c == "\\" and in_string:
            escape = True
            continue
        if c in ('"', "'", "`") and in_string is None:
            in_string = c
        elif c == in_string:
            in_string = None
        elif in_string is None:
            if c == opener:
                depth += 1
            elif c == closer:
                depth -= 1
                if depth == 0:
                    return code[start + 1 : i]

    raise CipherDerivationError(f"Could not find matching {closer!r}")


def split_top_level(code: str, separators: str = ",;") -> list[str]:
    """Split on separators that are not nested in brackets or strings."""
    parts = []
    current = []
    depth = 0
    in_string = None
    escape = False

    for c in code:
        if escape:
            current.append(c)
            escape = False
            continue
        if c == "\\" and in_string:
            current.append(c)
            escape = True
            continue

        if c in ('"', "'", "`") and in_string is None:
            in_string = c
        elif c == in_string:
            in_string = None
        elif in_string is None:
            if c in "{([":
                depth += 1
            elif c in "})]":
                depth -= 1
            elif c in separators and depth == 0:
                parts.append("".join(current).strip())
                current = []
                continue
        current.append(c)

    remaining = "".join(current).strip()
    if remaining:
        parts.append(remaining)
    return [p for p in parts if p]


def extract_function_code(code: str, func_name: str) -> tuple[list[str], str]:
    """Find ``function NAME(args){...}`` or ``NAME=function(args){...}``."""
    func_name_re = re.escape(func_name)
    func_match = re.search(
        rf"(?:function\s+{func_name_re}|"
        rf"(?:^|[^\w$.]){func_name_re}\s*=\s*function)"
        rf"\s*\((?P<args>[^)]*)\)\s*\{{",
        code,
    )
    if not func_match:
        raise CipherDerivationError(f"Could not find function {func_name!r}")

    arg_names = [a.strip() for a in func_match.group("args").split(",") if a.strip()]
    body = find_matching_brace(code, func_match.end() - 1)
    return arg_names, body


def extract_object(code: str, obj_name: str) -> dict[str, tuple[list[str], str]]:
    """Extract the methods of ``var NAME={key:function(args){...},...}``."""
    obj_match = re.search(rf"(?:var\s+|[;,\s]){re.escape(obj_name)}\s*=\s*\{{", code)
    if not obj_match:
        raise CipherDerivationError(f"Could not find object {obj_name!r}")

    obj_body = find_matching_brace(code, obj_match.end() - 1)
    methods: dict[str, tuple[list[str], str]] = {}
    for member in split_top_level(obj_body, ","):
        m = re.match(
            rf"""["']?(?P<key>{NAME_RE})["']?\s*:\s*function\s*\((?P<args>[^)]*)\)\s*\{{""",
            member,
        )
        if not m:
            continue
        args = [a.strip() for a in m.group("args").split(",") if a.strip()]
        methods[m.group("key")] = (args, find_matching_brace(member, m.end() - 1))
    return methods


def parse_literal(token: str) -> str | int | None:
    """Parse a string or integer literal; raises ValueError for anything else."""
    token = token.strip()
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ('"', "'"):
        inner = token[1:-1]
        if token[0] == "'":
            inner = inner.replace("\\'", "'").replace('"', '\\"')
        try:
            return json.loads(f'"{inner}"')
        except json.JSONDecodeError as exc:
            raise ValueError(f"unsupported string literal: {token!r}") from exc
    if re.fullmatch(r"-?\d+", token):
        return int(token)
    if token == "null":
        return None
    raise ValueError(f"not a literal: {token!r}")
