"""
Signature descrambling for ciphered formats.

The player script contains a short function that turns the scrambled ``s``
value of a format into a valid signature:

    XX=function(a){a=a.split("");Yz.Ab(a,3);Yz.cD(a,45);return a.join("")}

Each call goes into a helper object whose methods perform one array
manipulation. Rather than executing that code, the helper bodies are
classified into a closed set of operations and the call chain is replayed
into an ordered CipherOperations tuple. Unrecognized shapes fail with
CipherDerivationError.

The derived tuple depends only on the player version, so it is cached for the
whole process in CipherCache.
"""

import logging
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import CipherDerivationError
from .js_text import NAME_RE, extract_function_code, extract_object, split_top_level

logger = logging.getLogger(__name__)

# Patterns locating the initial descrambler function, most specific first.
# Ported from yt-dlp's signature function patterns.
_SIG_FUNC_PATTERNS = [
    r"\b[cs]\s*&&\s*[adf]\.set\([^,]+\s*,\s*encodeURIComponent\s*\(\s*(?P<name>[a-zA-Z0-9$]+)\(",
    r"\b[a-zA-Z0-9]+\s*&&\s*[a-zA-Z0-9]+\.set\([^,]+\s*,\s*encodeURIComponent\s*\(\s*(?P<name>[a-zA-Z0-9$]+)\(",
    r"\bm=(?P<name>[a-zA-Z0-9$]{2,})\(decodeURIComponent\(h\.s\)\)",
    r"\bc\s*&&\s*[a-z]\.set\([^,]+\s*,\s*(?P<name>[a-zA-Z0-9$]+)\(",
    r'(?:\b|[^a-zA-Z0-9$])(?P<name>[a-zA-Z0-9$]{2,})\s*=\s*function\(\s*a\s*\)\s*\{\s*a\s*=\s*a\.split\(\s*""\s*\)',
    r'(?P<name>[a-zA-Z0-9$]+)\s*=\s*function\(\s*a\s*\)\s*\{\s*a\s*=\s*a\.split\(\s*""\s*\)',
]


class CipherOpKind(str, Enum):
    REVERSE = "reverse"
    SPLICE = "splice"
    SWAP = "swap"
    IDENTITY = "identity"


@dataclass(frozen=True)
class CipherOp:
    kind: CipherOpKind
    arg: int = 0


CipherOperations = tuple[CipherOp, ...]


def find_signature_function_name(script: str) -> str:
    for pattern in _SIG_FUNC_PATTERNS:
        match = re.search(pattern, script)
        if match:
            return match.group("name")
    raise CipherDerivationError("Could not find signature function in player JS")


def classify_helper(args: list[str], body: str) -> CipherOpKind:
    """Map a helper method body onto one of the primitive operations."""
    compact = re.sub(r"\s+", "", body)
    if not compact:
        return CipherOpKind.IDENTITY
    if not args:
        raise CipherDerivationError(f"Helper without arguments: {body!r}")

    arr = re.escape(args[0])
    if re.fullmatch(rf"{arr}\.reverse\(\);?", compact):
        return CipherOpKind.REVERSE
    if re.fullmatch(rf"{arr}\.splice\(0,{NAME_RE}\);?", compact):
        return CipherOpKind.SPLICE
    # var c=a[0];a[0]=a[b%a.length];a[b%a.length]=c
    if re.match(rf"var{NAME_RE}={arr}\[0\];{arr}\[0\]={arr}\[{NAME_RE}%{arr}\.length\]", compact):
        return CipherOpKind.SWAP
    raise CipherDerivationError(f"Unrecognized cipher helper body: {body!r}")


def derive_operations(script: str, version: str = "") -> CipherOperations:
    """
    Locate the descrambler in *script* and turn it into operations.

    *version* is only used for logging; caching is done by CipherCache.
    """
    func_name = find_signature_function_name(script)
    arg_names, body = extract_function_code(script, func_name)
    if len(arg_names) != 1:
        raise CipherDerivationError(f"Signature function {func_name!r} takes {len(arg_names)} arguments")
    arg = re.escape(arg_names[0])

    call_re = re.compile(
        rf"""(?P<obj>{NAME_RE})(?:\.(?P<method>{NAME_RE})|\[["'](?P<qmethod>{NAME_RE})["']\])"""
        rf"""\({arg},(?P<n>\d+)\)"""
    )

    helper_obj = None
    helpers: dict[str, CipherOpKind] = {}
    operations: list[CipherOp] = []

    for stmt in split_top_level(body, ";,"):
        stmt = re.sub(r"\s+", "", stmt)
        if re.fullmatch(rf'{arg}={arg}\.split\((""|\'\')\)', stmt):
            continue
        if re.fullmatch(rf'return{arg}\.join\((""|\'\')\)', stmt):
            break

        call = call_re.fullmatch(stmt)
        if not call:
            raise CipherDerivationError(f"Unrecognized statement in signature function: {stmt!r}")

        obj = call.group("obj")
        if helper_obj is None:
            helper_obj = obj
            methods = extract_object(script, obj)
            helpers = {name: classify_helper(a, b) for name, (a, b) in methods.items()}
        elif obj != helper_obj:
            raise CipherDerivationError(f"Signature function calls a second helper object {obj!r}")

        method = call.group("method") or call.group("qmethod")
        if method not in helpers:
            raise CipherDerivationError(f"Helper {obj}.{method} not found")
        operations.append(CipherOp(helpers[method], int(call.group("n"))))

    if not operations:
        raise CipherDerivationError(f"Signature function {func_name!r} has no operations")

    logger.debug(
        "Derived %d cipher operations for player %s: %s",
        len(operations),
        version or "?",
        ", ".join(f"{op.kind.value}({op.arg})" for op in operations),
    )
    return tuple(operations)


def apply_signature(operations: CipherOperations, scrambled: str) -> str:
    """Run the operation sequence over the characters of *scrambled*."""
    chars = list(scrambled)
    for op in operations:
        if op.kind is CipherOpKind.REVERSE:
            chars.reverse()
        elif op.kind is CipherOpKind.SPLICE:
            del chars[: op.arg]
        elif op.kind is CipherOpKind.SWAP:
            if chars:
                pos = op.arg % len(chars)
                chars[0], chars[pos] = chars[pos], chars[0]
    return "".join(chars)


class CipherCache:
    """
    Process-wide store of derived cipher programs keyed by player version.

    Writes are insert-if-absent: two callers deriving the same version at the
    same time both compute a valid value and the first insert wins.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, str], Any] = {}

    def get(self, version: str, kind: str) -> Any:
        return self._entries.get((version, kind))

    def get_or_derive(self, version: str, kind: str, derive: Callable[[], Any]) -> Any:
        key = (version, kind)
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        value = derive()
        with self._lock:
            return self._entries.setdefault(key, value)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._entries


_cipher_cache = CipherCache()


def get_cipher_cache() -> CipherCache:
    return _cipher_cache
