"""
Throttling ("n" parameter) transformation.

Stream URLs carry an ``n`` query value that the player rewrites before
fetching; URLs with the original value are served at a throttled rate. The
rewrite function in the player script has this shape:

    XX=function(a){var b=a.split(""),c=[TABLE];c[30]=c;...
        try{c[40](c[14],c[2]),c[25](c[48]),...}catch(d){return"enhanced_except_"+a}
        return b.join("")}

TABLE mixes literals, the working array ``b``, the table itself and small
inline functions. This module does not evaluate script code. The inline
functions are classified into a closed set of operations (reverse, push,
swap, remove, rotate, prefix splice, alphabet cipher), the alphabet cipher's
character-code loop is simulated over a fixed statement set, and the call
sequence is replayed by a dedicated interpreter. Anything outside that set
fails with CipherDerivationError (derivation) or ThrottleError (application).
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import CipherDerivationError, ThrottleError
from .js_text import NAME_RE, extract_function_code, find_matching_brace, parse_literal, split_top_level

logger = logging.getLogger(__name__)

# Upper bound for the alphabet generator loop
_MAX_LOOP_ITERATIONS = 10_000

_NSIG_FUNC_PATTERNS = [
    r'\.get\("n"\)\)&&\(b=(?P<name>[a-zA-Z0-9$]+)(?:\[(?P<idx>\d+)\])?\([a-zA-Z0-9]\)',
    r'\b(?P<var>[a-zA-Z0-9$]+)&&\((?P=var)=(?P<name>[a-zA-Z0-9$]{2,})(?:\[(?P<idx>\d+)\])?\((?P=var)\),[a-zA-Z0-9$]+\.set\("n"',
]


class ThrottleOpKind(str, Enum):
    REVERSE = "reverse"
    PUSH = "push"
    SWAP = "swap"
    REMOVE = "remove"
    ROTATE = "rotate"
    SPLICE_PREFIX = "splice_prefix"
    CIPHER = "cipher"


@dataclass(frozen=True)
class ThrottleOp:
    kind: ThrottleOpKind
    # CIPHER only: either the alphabet is passed as argument ``alphabet_arg``
    # (counter starts at its length) or it was generated at derivation time.
    alphabet: str | None = None
    counter: int | None = None
    offset: int = 0
    alphabet_arg: int | None = None


class TableRef(str, Enum):
    WORKING = "working"
    TABLE = "table"


@dataclass(frozen=True)
class ArgRef:
    index: int


@dataclass(frozen=True)
class ThrottleCall:
    callee: int
    args: tuple[Any, ...]


@dataclass(frozen=True)
class ThrottleFunction:
    """Derived program: element table, in-place assignments, call sequence."""

    table: tuple[Any, ...]
    assignments: tuple[tuple[int, Any], ...]
    calls: tuple[ThrottleCall, ...]


# ----------------------------------------------------------------------
# Locating the function
# ----------------------------------------------------------------------


def find_throttle_function_name(script: str) -> str:
    for pattern in _NSIG_FUNC_PATTERNS:
        match = re.search(pattern, script)
        if not match:
            continue
        name = match.group("name")
        idx = match.group("idx")
        if idx is None:
            return name
        # var NAME=[fn1,fn2]; NAME[0](b)
        arr = re.search(rf"var\s+{re.escape(name)}\s*=\s*\[(?P<items>[^\]]+)\]", script)
        if not arr:
            raise CipherDerivationError(f"Could not resolve n-function array {name!r}")
        items = [i.strip() for i in arr.group("items").split(",")]
        if int(idx) >= len(items):
            raise CipherDerivationError(f"n-function index {idx} out of range for {name!r}")
        return items[int(idx)]

    # Fall back to the function defined right before its error marker
    marker = script.find("enhanced_except_")
    if marker >= 0:
        defs = list(
            re.finditer(
                r"(?:^|[;,\s])(?P<name>[a-zA-Z0-9$]+)\s*=\s*function\(\s*[a-zA-Z0-9$]+\s*\)\s*\{",
                script[:marker],
            )
        )
        if defs:
            return defs[-1].group("name")

    raise CipherDerivationError("Could not find n-parameter function in player JS")


# ----------------------------------------------------------------------
# Classifying inline functions
# ----------------------------------------------------------------------


def _norm(arr: str, n: str) -> str:
    """Pattern for ``n=(n%arr.length+arr.length)%arr.length``."""
    return rf"{n}=\({n}%{arr}\.length\+{arr}\.length\)%{arr}\.length"


def _generate_alphabet(start: int, end: int, counter_var: str, list_var: str, cases: str) -> tuple[str, int]:
    """
    Simulate ``for(var f=START,h=[];++f-h.length-END;){switch(f){CASES}}``.

    Only counter arithmetic, ``continue``/``break`` and pushing
    ``String.fromCharCode(f)`` are understood.
    """
    f = re.escape(counter_var)
    h = re.escape(list_var)
    entries: list[tuple[str, Any]] = []
    for part in split_top_level(cases, ";"):
        while True:
            label = re.match(r"case(-?\d+):", part)
            if label:
                entries.append(("case", int(label.group(1))))
                part = part[label.end() :]
                continue
            if part.startswith("default:"):
                entries.append(("default", None))
                part = part[len("default:") :]
                continue
            break
        if not part:
            continue
        if part in ("continue", "break"):
            entries.append((part, None))
        elif m := re.fullmatch(rf"{f}(?P<op>[-+]?)=(?P<n>-?\d+)", part):
            entries.append(("assign", (m.group("op"), int(m.group("n")))))
        elif re.fullmatch(rf"{h}\.push\(String\.fromCharCode\({f}\)\)", part):
            entries.append(("push", None))
        else:
            raise CipherDerivationError(f"Unsupported statement in alphabet loop: {part!r}")

    labels = {value: i for i, (kind, value) in enumerate(entries) if kind == "case"}
    default = next((i for i, (kind, _) in enumerate(entries) if kind == "default"), None)

    value = start
    alphabet: list[str] = []
    for _ in range(_MAX_LOOP_ITERATIONS):
        value += 1
        if value - len(alphabet) - end == 0:
            return "".join(alphabet), value

        pos = labels.get(value, default)
        if pos is None:
            continue
        for kind, arg in entries[pos:]:
            if kind in ("continue", "break"):
                break
            if kind == "assign":
                op, n = arg
                value = value + n if op == "+" else value - n if op == "-" else n
            elif kind == "push":
                if not 0 <= value < 0x110000:
                    raise CipherDerivationError(f"Character code {value} out of range")
                alphabet.append(chr(value))

    raise CipherDerivationError("Alphabet loop did not terminate")


def _classify_cipher(args: list[str], body: str) -> ThrottleOp:
    foreach = re.search(
        rf"(?P<target>{NAME_RE})\.forEach\(function\((?P<l>{NAME_RE}),(?P<m>{NAME_RE}),(?P<n>{NAME_RE})\)\{{"
        rf"this\.push\((?P=n)\[(?P=m)\]=(?P<alpha>{NAME_RE})\[\((?P=alpha)\.indexOf\((?P=l)\)"
        rf"-(?P=alpha)\.indexOf\(this\[(?P=m)\]\)\+(?P=m)(?P<offset>[-+]\d+)?\+(?P<counter>{NAME_RE})--\)"
        rf"%(?P=alpha)\.length\]\)\}},(?P<key>{NAME_RE})\.split\((?:\"\"|'')\)\)",
        body,
    )
    if not foreach:
        raise CipherDerivationError(f"Unrecognized n-function helper: {body!r}")
    if foreach.group("target") != args[0] or foreach.group("key") != args[1]:
        raise CipherDerivationError("Alphabet cipher operates on unexpected arguments")

    alpha = foreach.group("alpha")
    counter = foreach.group("counter")
    offset = int(foreach.group("offset") or 0)
    prefix = body[: foreach.start()]

    if alpha in args:
        if not re.fullmatch(rf"var{re.escape(counter)}={re.escape(alpha)}\.length;?", prefix):
            raise CipherDerivationError("Alphabet cipher counter is not the alphabet length")
        return ThrottleOp(ThrottleOpKind.CIPHER, offset=offset, alphabet_arg=args.index(alpha))

    loop = re.fullmatch(
        rf"for\(var(?P<f>{NAME_RE})=(?P<start>-?\d+),(?P<h>{NAME_RE})=\[\];"
        rf"\+\+(?P=f)-(?P=h)\.length-(?P<end>\d+);\)\{{switch\((?P=f)\)\{{(?P<cases>.*)\}}\}};?",
        prefix,
    )
    if not loop or loop.group("h") != alpha or loop.group("f") != counter:
        raise CipherDerivationError("Unrecognized alphabet generator")

    alphabet, final = _generate_alphabet(
        int(loop.group("start")),
        int(loop.group("end")),
        loop.group("f"),
        loop.group("h"),
        loop.group("cases"),
    )
    return ThrottleOp(ThrottleOpKind.CIPHER, alphabet=alphabet, counter=final, offset=offset)


def classify_function(args: list[str], body: str) -> ThrottleOp:
    """Map an inline table function onto a ThrottleOp."""
    compact = re.sub(r"\s+", "", body).rstrip(";")
    if not args:
        raise CipherDerivationError(f"n-function helper without arguments: {body!r}")

    d = re.escape(args[0])
    if re.fullmatch(rf"{d}\.reverse\(\)", compact) or re.fullmatch(
        rf"for\(var(?P<i>{NAME_RE})={d}\.length;(?P=i);\){d}\.push\({d}\.splice\(--(?P=i),1\)\[0\]\)",
        compact,
    ):
        return ThrottleOp(ThrottleOpKind.REVERSE)
    if len(args) == 1:
        raise CipherDerivationError(f"Unrecognized n-function helper: {body!r}")

    e = re.escape(args[1])
    if "forEach" in compact and "indexOf" in compact:
        return _classify_cipher(args, compact)
    if re.fullmatch(rf"{d}\.push\({e}\)", compact):
        return ThrottleOp(ThrottleOpKind.PUSH)
    if re.fullmatch(rf"{d}\.splice\(0,{e}\)", compact):
        return ThrottleOp(ThrottleOpKind.SPLICE_PREFIX)
    if re.fullmatch(rf"for\({_norm(d, e)};{e}--;\){d}\.unshift\({d}\.pop\(\)\)", compact):
        return ThrottleOp(ThrottleOpKind.ROTATE)

    norm = re.match(rf"{_norm(d, e)};", compact)
    rest = compact[norm.end() :] if norm else compact
    if re.fullmatch(rf"{d}\.splice\(0,1,{d}\.splice\({e},1,{d}\[0\]\)\[0\]\)", rest):
        return ThrottleOp(ThrottleOpKind.SWAP)
    if re.fullmatch(
        rf"var(?P<t>{NAME_RE})={d}\[0\];{d}\[0\]={d}\[{e}(?:%{d}\.length)?\];{d}\[{e}(?:%{d}\.length)?\]=(?P=t)",
        rest,
    ):
        return ThrottleOp(ThrottleOpKind.SWAP)
    if norm and re.fullmatch(rf"{d}\.splice\({e},1\)", rest):
        return ThrottleOp(ThrottleOpKind.REMOVE)
    if norm and re.fullmatch(
        rf"{d}\.splice\(-{e}\)\.reverse\(\)\.forEach\(function\((?P<x>{NAME_RE})\)\{{{d}\.unshift\((?P=x)\)\}}\)",
        rest,
    ):
        return ThrottleOp(ThrottleOpKind.ROTATE)

    raise CipherDerivationError(f"Unrecognized n-function helper: {body!r}")


# ----------------------------------------------------------------------
# Derivation
# ----------------------------------------------------------------------


def _parse_element(token: str, working: str, table: str) -> Any:
    token = token.strip()
    if token == working:
        return TableRef.WORKING
    if token == table:
        return TableRef.TABLE
    func = re.match(r"function\s*\((?P<args>[^)]*)\)\s*\{", token)
    if func:
        args = [a.strip() for a in func.group("args").split(",") if a.strip()]
        return classify_function(args, find_matching_brace(token, func.end() - 1))
    try:
        return parse_literal(token)
    except ValueError as exc:
        raise CipherDerivationError(f"Unsupported n-function table element: {token[:80]!r}") from exc


def _parse_operand(token: str, working: str, table: str) -> Any:
    ref = re.fullmatch(rf"\s*{re.escape(table)}\s*\[\s*(\d+)\s*\]\s*", token)
    if ref:
        return ArgRef(int(ref.group(1)))
    return _parse_element(token, working, table)


def derive_throttle(script: str) -> ThrottleFunction:
    """Locate the n-function in *script* and compile it into a ThrottleFunction."""
    func_name = find_throttle_function_name(script)
    arg_names, body = extract_function_code(script, func_name)
    if len(arg_names) != 1:
        raise CipherDerivationError(f"n-function {func_name!r} takes {len(arg_names)} arguments")
    arg = re.escape(arg_names[0])

    header = re.match(
        rf"\s*var\s+(?P<b>{NAME_RE})\s*=\s*{arg}\.split\(\s*(?:\"\"|'')\s*\)\s*,\s*(?P<c>{NAME_RE})\s*=\s*\[",
        body,
    )
    if not header:
        raise CipherDerivationError(f"Unrecognized n-function prologue in {func_name!r}")
    working, table_name = header.group("b"), header.group("c")

    table_text = find_matching_brace(body, header.end() - 1)
    table = tuple(_parse_element(t, working, table_name) for t in split_top_level(table_text, ","))
    rest = body[header.end() + len(table_text) + 1 :]

    try_pos = re.search(r"\btry\s*\{", rest)
    if not try_pos:
        raise CipherDerivationError(f"n-function {func_name!r} has no call block")
    calls_text = find_matching_brace(rest, try_pos.end() - 1)
    tail = rest[try_pos.end() + len(calls_text) + 1 :]
    if not re.search(rf"return\s+{re.escape(working)}\.join\(\s*(?:\"\"|'')\s*\)", tail):
        raise CipherDerivationError(f"n-function {func_name!r} does not return the working array")

    c = re.escape(table_name)
    assignments = []
    for stmt in split_top_level(rest[: try_pos.start()], ";,"):
        m = re.fullmatch(rf"{c}\s*\[\s*(\d+)\s*\]\s*=\s*(?P<value>.+)", stmt, re.DOTALL)
        if not m:
            raise CipherDerivationError(f"Unsupported statement in n-function: {stmt[:80]!r}")
        assignments.append((int(m.group(1)), _parse_element(m.group("value"), working, table_name)))

    calls = []
    for stmt in split_top_level(calls_text, ";,"):
        m = re.fullmatch(
            rf"(?:\(\s*0\s*,\s*{c}\s*\[\s*(?P<seq>\d+)\s*\]\s*\)|{c}\s*\[\s*(?P<idx>\d+)\s*\])\s*\((?P<args>.*)\)",
            stmt,
            re.DOTALL,
        )
        if not m:
            raise CipherDerivationError(f"Unsupported call in n-function: {stmt[:80]!r}")
        callee = int(m.group("seq") or m.group("idx"))
        args = tuple(_parse_operand(a, working, table_name) for a in split_top_level(m.group("args"), ","))
        calls.append(ThrottleCall(callee, args))

    if not calls:
        raise CipherDerivationError(f"n-function {func_name!r} has an empty call block")

    program = ThrottleFunction(table, tuple(assignments), tuple(calls))
    _check_program(program)
    logger.debug("Derived n-function %r: %d table entries, %d calls", func_name, len(table), len(calls))
    return program


def _check_program(program: ThrottleFunction):
    """Every call must target an operation and every reference must be in range."""
    slots = list(program.table)
    for index, value in program.assignments:
        if index >= len(slots):
            raise CipherDerivationError(f"Assignment to table slot {index} out of range")
        slots[index] = value

    for call in program.calls:
        if call.callee >= len(slots) or not isinstance(slots[call.callee], ThrottleOp):
            raise CipherDerivationError(f"Table slot {call.callee} is not a known operation")
        for arg in call.args:
            if isinstance(arg, ArgRef) and arg.index >= len(slots):
                raise CipherDerivationError(f"Table reference {arg.index} out of range")


# ----------------------------------------------------------------------
# Application
# ----------------------------------------------------------------------


def _js_mod(a: int, n: int) -> int:
    """JavaScript remainder: the sign follows the dividend."""
    r = abs(a) % n
    return -r if a < 0 else r


def _index_arg(arr: Any, value: Any, op: ThrottleOp) -> tuple[list, int]:
    if not isinstance(arr, list) or isinstance(value, bool) or not isinstance(value, int):
        raise ThrottleError(f"{op.kind.value} expects (array, integer), got ({type(arr).__name__}, {value!r})")
    if not arr:
        raise ThrottleError(f"{op.kind.value} on an empty array")
    return arr, value % len(arr)


def _run_cipher(op: ThrottleOp, args: list[Any]):
    target, key = args[0], args[1]
    if not isinstance(target, list) or not isinstance(key, str):
        raise ThrottleError("Alphabet cipher expects (array, string)")

    if op.alphabet_arg is not None:
        alphabet = args[op.alphabet_arg] if op.alphabet_arg < len(args) else None
        if not isinstance(alphabet, str):
            raise ThrottleError("Alphabet cipher expects a string alphabet")
        counter = len(alphabet)
    else:
        alphabet, counter = op.alphabet, op.counter
    if not alphabet:
        raise ThrottleError("Alphabet cipher with an empty alphabet")

    def index_of(ch: Any) -> int:
        return alphabet.find(ch) if isinstance(ch, str) and ch else -1

    keys = list(key)
    for m in range(len(target)):
        shifted = index_of(target[m]) - index_of(keys[m] if m < len(keys) else None) + m + op.offset + counter
        counter -= 1
        pos = _js_mod(shifted, len(alphabet))
        if pos < 0:
            raise ThrottleError("Alphabet cipher index went negative")
        target[m] = alphabet[pos]
        keys.append(target[m])


def _invoke(op: ThrottleOp, args: list[Any]):
    while len(args) < 3:
        args.append(None)
    arr = args[0]

    if op.kind is ThrottleOpKind.REVERSE:
        if not isinstance(arr, list):
            raise ThrottleError("reverse expects an array")
        arr.reverse()
    elif op.kind is ThrottleOpKind.PUSH:
        if not isinstance(arr, list):
            raise ThrottleError("push expects an array")
        arr.append(args[1])
    elif op.kind is ThrottleOpKind.SWAP:
        arr, pos = _index_arg(arr, args[1], op)
        arr[0], arr[pos] = arr[pos], arr[0]
    elif op.kind is ThrottleOpKind.REMOVE:
        arr, pos = _index_arg(arr, args[1], op)
        del arr[pos]
    elif op.kind is ThrottleOpKind.ROTATE:
        arr, pos = _index_arg(arr, args[1], op)
        if pos:
            arr[:] = arr[-pos:] + arr[:-pos]
    elif op.kind is ThrottleOpKind.SPLICE_PREFIX:
        if not isinstance(arr, list) or not isinstance(args[1], int):
            raise ThrottleError("splice expects (array, integer)")
        del arr[: max(args[1], 0)]
    elif op.kind is ThrottleOpKind.CIPHER:
        _run_cipher(op, args)


def _js_join(items: list) -> str:
    parts = []
    for item in items:
        if item is None:
            parts.append("")
        elif isinstance(item, str):
            parts.append(item)
        elif isinstance(item, int) and not isinstance(item, bool):
            parts.append(str(item))
        else:
            raise ThrottleError(f"Cannot join element of type {type(item).__name__}")
    return "".join(parts)


def apply_throttle(program: ThrottleFunction, raw: str) -> str:
    """Run *program* over the raw ``n`` value and return the rewritten value."""
    working = list(raw)
    table: list[Any] = []

    def resolve(value: Any) -> Any:
        if value is TableRef.WORKING:
            return working
        if value is TableRef.TABLE:
            return table
        return value

    table.extend(resolve(v) for v in program.table)
    for index, value in program.assignments:
        table[index] = resolve(value)

    def slot(index: int) -> Any:
        # The table may shrink while the program runs
        if index >= len(table):
            raise ThrottleError(f"Table slot {index} out of range (table has {len(table)} entries)")
        return table[index]

    for call in program.calls:
        op = slot(call.callee)
        if not isinstance(op, ThrottleOp):
            raise ThrottleError(f"Table slot {call.callee} is not callable")
        args = [slot(a.index) if isinstance(a, ArgRef) else resolve(a) for a in call.args]
        try:
            _invoke(op, args)
        except (IndexError, TypeError, ValueError) as e:
            raise ThrottleError(f"{op.kind.value} failed: {e}") from e

    return _js_join(working)
