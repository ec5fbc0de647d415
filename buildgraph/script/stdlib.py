"""Standard library available to configuration scripts.

Scripts get the Lua base functions plus the ``string``, ``table`` and
``math`` libraries. Nothing that reaches the filesystem, the environment
or the clock (``io``, ``os``, ``require``, ``load``) is exposed.

Lua patterns used by ``string.find``, ``match``, ``gmatch`` and ``gsub``
are translated to Python regular expressions. The ``%b`` and ``%f``
items and position captures have no translation and raise ``ScriptError``.
"""

from __future__ import annotations

import functools
import logging
import math
import re
import string
from typing import Any, Dict, List, Optional, Tuple

from buildgraph.errors import ScriptError
from buildgraph.script.values import (
    LuaTable,
    call_value,
    check_any,
    check_integer,
    check_number,
    check_string,
    check_table,
    is_number,
    is_truthy,
    opt_integer,
    to_number,
    to_string,
    type_name,
    values_equal,
)

logger = logging.getLogger("buildgraph.script.stdlib")

LUA_VERSION = "Lua 5.4"


# -- base functions ----------------------------------------------------------


def _print(*args: Any) -> None:
    logger.info("%s", "\t".join(to_string(a) for a in args))


def _error(*args: Any) -> None:
    message = args[0] if args else None
    raise ScriptError(to_string(message) if message is not None else "nil")


def _assert(*args: Any) -> Any:
    if not args or not is_truthy(args[0]):
        message = args[1] if len(args) > 1 else "assertion failed!"
        raise ScriptError(to_string(message))
    return tuple(args)


def _tostring(*args: Any) -> str:
    return to_string(check_any(args, 0, "tostring"))


def _tonumber(*args: Any) -> Any:
    value = check_any(args, 0, "tonumber")
    if len(args) < 2 or args[1] is None:
        return to_number(value)
    base = check_integer(args, 1, "tonumber")
    if not 2 <= base <= 36:
        raise ScriptError("bad argument #2 to 'tonumber' (base out of range)")
    text = check_string(args, 0, "tonumber").strip(" \t\n\r\f\v").lower()
    negative = text.startswith("-")
    digits = text[1:] if negative else text
    if not re.fullmatch(r"[0-9a-z]+", digits) or any(int(ch, 36) >= base for ch in digits):
        return None
    number = int(digits, base)
    return -number if negative else number


def _type(*args: Any) -> str:
    return type_name(check_any(args, 0, "type"))


def _ipairs_step(table: LuaTable, index: int) -> Any:
    index += 1
    value = table.get(index)
    if value is None:
        return None
    return (index, value)


def _ipairs(*args: Any) -> Tuple[Any, ...]:
    return (_ipairs_step, check_table(args, 0, "ipairs"), 0)


def _pairs(*args: Any) -> Tuple[Any, ...]:
    table = check_table(args, 0, "pairs")
    entries = iter(table.items())

    def step(*_: Any) -> Any:
        return next(entries, None)

    return (step, table, None)


def _next(*args: Any) -> Any:
    table = check_table(args, 0, "next")
    return table.next(args[1] if len(args) > 1 else None)


def _select(*args: Any) -> Any:
    selector = check_any(args, 0, "select")
    rest = args[1:]
    if selector == "#":
        return len(rest)
    n = check_integer(args, 0, "select")
    if n < 0:
        n = len(rest) + n + 1
        if n < 1:
            raise ScriptError("bad argument #1 to 'select' (index out of range)")
    elif n == 0:
        raise ScriptError("bad argument #1 to 'select' (index out of range)")
    return tuple(rest[n - 1:])


def _pcall(*args: Any) -> Tuple[Any, ...]:
    func = check_any(args, 0, "pcall")
    try:
        results = call_value(func, list(args[1:]))
    except ScriptError as exc:
        return (False, str(exc))
    except RecursionError:
        return (False, "stack overflow")
    return tuple([True] + results)


def _rawget(*args: Any) -> Any:
    return check_table(args, 0, "rawget").get(check_any(args, 1, "rawget"))


def _rawset(*args: Any) -> LuaTable:
    table = check_table(args, 0, "rawset")
    table.set(check_any(args, 1, "rawset"), check_any(args, 2, "rawset"))
    return table


def _rawequal(*args: Any) -> bool:
    return values_equal(check_any(args, 0, "rawequal"), check_any(args, 1, "rawequal"))


def _rawlen(*args: Any) -> int:
    value = check_any(args, 0, "rawlen")
    if isinstance(value, LuaTable):
        return value.length()
    if isinstance(value, str):
        return len(value)
    raise ScriptError("table or string expected")


_BASE_FUNCTIONS: Dict[str, Any] = {
    "assert": _assert,
    "error": _error,
    "ipairs": _ipairs,
    "next": _next,
    "pairs": _pairs,
    "pcall": _pcall,
    "print": _print,
    "rawequal": _rawequal,
    "rawget": _rawget,
    "rawlen": _rawlen,
    "rawset": _rawset,
    "select": _select,
    "tonumber": _tonumber,
    "tostring": _tostring,
    "type": _type,
}


# -- patterns ----------------------------------------------------------------

_CLASSES = {
    "a": "A-Za-z",
    "c": "\\x00-\\x1f\\x7f",
    "d": "0-9",
    "g": "\\x21-\\x7e",
    "l": "a-z",
    "p": re.escape(string.punctuation),
    "s": " \\t\\n\\r\\f\\v",
    "u": "A-Z",
    "w": "A-Za-z0-9",
    "x": "0-9A-Fa-f",
}
# Complemented classes that have a Python escape usable inside a set.
_SET_COMPLEMENTS = {"D": "\\D", "S": "\\S"}
_SPECIALS = re.compile(r"[\^$*+?.()\[\]%-]")


def _class_item(letter: str) -> str:
    body = _CLASSES.get(letter.lower())
    if body is None:
        return re.escape(letter)
    return f"[{body}]" if letter.islower() else f"[^{body}]"


def _set_item(pattern: str, start: int) -> Tuple[str, int]:
    """Translate the ``[...]`` set at ``start``; returns it and the next index."""
    parts = ["["]
    i = start + 1
    if i < len(pattern) and pattern[i] == "^":
        parts.append("^")
        i += 1
    first = True
    while True:
        if i >= len(pattern):
            raise ScriptError("malformed pattern (missing ']')")
        ch = pattern[i]
        if ch == "]" and not first:
            break
        first = False
        if ch == "%":
            if i + 1 >= len(pattern):
                raise ScriptError("malformed pattern (ends with '%')")
            letter = pattern[i + 1]
            if letter in _CLASSES:
                parts.append(_CLASSES[letter])
            elif letter in _SET_COMPLEMENTS:
                parts.append(_SET_COMPLEMENTS[letter])
            elif letter.lower() in _CLASSES:
                raise ScriptError(f"class '%{letter}' inside a set is not supported")
            else:
                parts.append(re.escape(letter))
            i += 2
        elif i + 2 < len(pattern) and pattern[i + 1] == "-" and pattern[i + 2] != "]":
            parts.append(f"{re.escape(ch)}-{re.escape(pattern[i + 2])}")
            i += 3
        else:
            parts.append(re.escape(ch))
            i += 1
    parts.append("]")
    return "".join(parts), i + 1


def translate_pattern(pattern: str) -> Tuple[str, bool]:
    """Translate a Lua pattern into a Python regex.

    Returns:
        The regex source and whether the pattern was anchored with ``^``.

    Raises:
        ScriptError: If the pattern is malformed or uses an item without a
            translation.
    """
    anchored = pattern.startswith("^")
    i = 1 if anchored else 0
    out: List[str] = []
    while i < len(pattern):
        ch = pattern[i]
        if ch == "(":
            if pattern.startswith("()", i):
                raise ScriptError("position captures are not supported")
            out.append("(")
            i += 1
            continue
        if ch == ")":
            out.append(")")
            i += 1
            continue
        if ch == "$" and i == len(pattern) - 1:
            out.append("\\Z")
            i += 1
            continue

        if ch == "%":
            if i + 1 >= len(pattern):
                raise ScriptError("malformed pattern (ends with '%')")
            letter = pattern[i + 1]
            if letter in ("b", "f"):
                raise ScriptError(f"pattern item '%{letter}' is not supported")
            i += 2
            if letter.isdigit():
                out.append(f"(?:\\{letter})")
                continue
            item = _class_item(letter)
        elif ch == "[":
            item, i = _set_item(pattern, i)
        elif ch == ".":
            item = "."
            i += 1
        else:
            item = re.escape(ch)
            i += 1

        if i < len(pattern) and pattern[i] in "*+-?":
            item += "*?" if pattern[i] == "-" else pattern[i]
            i += 1
        out.append(item)
    return "".join(out), anchored


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> Tuple["re.Pattern[str]", bool]:
    source, anchored = translate_pattern(pattern)
    try:
        return re.compile(source, re.DOTALL), anchored
    except re.error as exc:
        raise ScriptError(f"malformed pattern '{pattern}': {exc}") from None


def _search(text: str, pattern: str, pos: int) -> Optional["re.Match[str]"]:
    compiled, anchored = _compile(pattern)
    return compiled.match(text, pos) if anchored else compiled.search(text, pos)


def _captures(match: "re.Match[str]") -> Tuple[Any, ...]:
    groups = match.groups()
    return groups if groups else (match.group(0),)


def _start_index(init: int, length: int) -> Optional[int]:
    """0-based start for a Lua ``init`` argument, None if past the end."""
    if init < 0:
        init = max(length + init + 1, 1)
    elif init == 0:
        init = 1
    if init > length + 1:
        return None
    return init - 1


# -- string library ----------------------------------------------------------


def _str_len(*args: Any) -> int:
    return len(check_string(args, 0, "len"))


def _str_sub(*args: Any) -> str:
    text = check_string(args, 0, "sub")
    length = len(text)
    i = opt_integer(args, 1, "sub", 1)
    j = opt_integer(args, 2, "sub", -1)
    if i < 0:
        i = max(length + i + 1, 1)
    elif i == 0:
        i = 1
    if j < 0:
        j = length + j + 1
    elif j > length:
        j = length
    return text[i - 1:j] if i <= j else ""


def _str_upper(*args: Any) -> str:
    return check_string(args, 0, "upper").upper()


def _str_lower(*args: Any) -> str:
    return check_string(args, 0, "lower").lower()


def _str_reverse(*args: Any) -> str:
    return check_string(args, 0, "reverse")[::-1]


def _str_rep(*args: Any) -> str:
    text = check_string(args, 0, "rep")
    count = check_integer(args, 1, "rep")
    separator = check_string(args, 2, "rep") if len(args) > 2 and args[2] is not None else ""
    if count <= 0:
        return ""
    return separator.join([text] * count)


def _str_byte(*args: Any) -> Any:
    text = check_string(args, 0, "byte")
    i = opt_integer(args, 1, "byte", 1)
    j = opt_integer(args, 2, "byte", i)
    length = len(text)
    if i < 0:
        i = max(length + i + 1, 1)
    elif i == 0:
        i = 1
    if j < 0:
        j = length + j + 1
    elif j > length:
        j = length
    return tuple(ord(ch) for ch in text[i - 1:j])


def _str_char(*args: Any) -> str:
    return "".join(chr(check_integer(args, k, "char")) for k in range(len(args)))


def _str_find(*args: Any) -> Any:
    text = check_string(args, 0, "find")
    pattern = check_string(args, 1, "find")
    start = _start_index(opt_integer(args, 2, "find", 1), len(text))
    if start is None:
        return None
    plain = len(args) > 3 and is_truthy(args[3])
    if plain or not _SPECIALS.search(pattern):
        position = text.find(pattern, start)
        if position < 0:
            return None
        return (position + 1, position + len(pattern))
    match = _search(text, pattern, start)
    if match is None:
        return None
    return (match.start() + 1, match.end()) + match.groups()


def _str_match(*args: Any) -> Any:
    text = check_string(args, 0, "match")
    pattern = check_string(args, 1, "match")
    start = _start_index(opt_integer(args, 2, "match", 1), len(text))
    if start is None:
        return None
    match = _search(text, pattern, start)
    if match is None:
        return None
    return _captures(match)


def _str_gmatch(*args: Any) -> Any:
    text = check_string(args, 0, "gmatch")
    pattern = check_string(args, 1, "gmatch")
    _compile(pattern)
    position = [0]

    def step(*_: Any) -> Any:
        if position[0] > len(text):
            return None
        match = _search(text, pattern, position[0])
        if match is None:
            position[0] = len(text) + 1
            return None
        position[0] = match.end() + 1 if match.end() == match.start() else match.end()
        return _captures(match)

    return step


def _expand_replacement(template: str, match: "re.Match[str]") -> str:
    out: List[str] = []
    i = 0
    while i < len(template):
        ch = template[i]
        if ch != "%":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= len(template):
            raise ScriptError("invalid use of '%' in replacement string")
        code = template[i + 1]
        if code == "%":
            out.append("%")
        elif code == "0":
            out.append(match.group(0))
        elif code.isdigit():
            index = int(code)
            if index == 1 and not match.groups():
                out.append(match.group(0))
            elif index > len(match.groups()):
                raise ScriptError(f"invalid capture index %{index} in replacement string")
            else:
                out.append(match.group(index) or "")
        else:
            raise ScriptError("invalid use of '%' in replacement string")
        i += 2
    return "".join(out)


def _replacement(match: "re.Match[str]", repl: Any) -> str:
    if isinstance(repl, str) or is_number(repl):
        return _expand_replacement(to_string(repl), match)
    key = _captures(match)[0]
    if isinstance(repl, LuaTable):
        value = repl.get(key)
    else:
        results = call_value(repl, list(_captures(match)))
        value = results[0] if results else None
    if value is None or value is False:
        return match.group(0)
    if isinstance(value, str) or is_number(value):
        return to_string(value)
    raise ScriptError(f"invalid replacement value (a {type_name(value)})")


def _str_gsub(*args: Any) -> Tuple[str, int]:
    text = check_string(args, 0, "gsub")
    pattern = check_string(args, 1, "gsub")
    repl = args[2] if len(args) > 2 else None
    if not (isinstance(repl, (str, LuaTable)) or is_number(repl) or callable(repl)):
        raise ScriptError(
            "bad argument #3 to 'gsub' (string/function/table expected, "
            f"got {type_name(repl) if len(args) > 2 else 'no value'})"
        )
    limit = None if len(args) < 4 or args[3] is None else check_integer(args, 3, "gsub")
    compiled, anchored = _compile(pattern)

    out: List[str] = []
    position = 0
    count = 0
    while limit is None or count < limit:
        match = compiled.match(text, position) if anchored else compiled.search(text, position)
        if match is None:
            break
        out.append(text[position:match.start()])
        out.append(_replacement(match, repl))
        count += 1
        if match.end() > match.start():
            position = match.end()
        else:
            if match.start() < len(text):
                out.append(text[match.start()])
            position = match.start() + 1
        if anchored or position > len(text):
            break
    out.append(text[position:])
    return ("".join(out), count)


_FORMAT_RE = re.compile(r"%([-+ #0]*)(\d*)(?:\.(\d*))?(.?)", re.DOTALL)


def _quote(value: Any) -> str:
    if isinstance(value, str):
        body = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
            .replace("\0", "\\0")
        )
        return f'"{body}"'
    if value is None or isinstance(value, bool) or is_number(value):
        return to_string(value)
    raise ScriptError("bad argument to 'format' (value has no literal form)")


def _str_format(*args: Any) -> str:
    template = check_string(args, 0, "format")
    next_arg = [1]

    def convert(match: "re.Match[str]") -> str:
        flags, width, precision, conversion = match.groups()
        if conversion == "%":
            return "%"
        index = next_arg[0]
        next_arg[0] += 1
        directive = "%" + flags + width + ("." + precision if precision is not None else "")
        if conversion in ("d", "i"):
            return (directive + "d") % check_integer(args, index, "format")
        if conversion in ("x", "X", "o"):
            return (directive + conversion) % check_integer(args, index, "format")
        if conversion == "c":
            return chr(check_integer(args, index, "format"))
        if conversion in ("e", "E", "f", "F", "g", "G"):
            return (directive + conversion) % float(check_number(args, index, "format"))
        if conversion == "s":
            return (directive + "s") % to_string(check_any(args, index, "format"))
        if conversion == "q":
            return _quote(check_any(args, index, "format"))
        raise ScriptError(f"invalid conversion '%{conversion}' to 'format'")

    return _FORMAT_RE.sub(convert, template)


_STRING_FUNCTIONS: Dict[str, Any] = {
    "byte": _str_byte,
    "char": _str_char,
    "find": _str_find,
    "format": _str_format,
    "gmatch": _str_gmatch,
    "gsub": _str_gsub,
    "len": _str_len,
    "lower": _str_lower,
    "match": _str_match,
    "rep": _str_rep,
    "reverse": _str_reverse,
    "sub": _str_sub,
    "upper": _str_upper,
}


# -- table library -----------------------------------------------------------


def _tbl_insert(*args: Any) -> None:
    table = check_table(args, 0, "insert")
    size = table.length()
    if len(args) == 2:
        table.set(size + 1, args[1])
        return None
    if len(args) != 3:
        raise ScriptError("wrong number of arguments to 'insert'")
    position = check_integer(args, 1, "insert")
    if not 1 <= position <= size + 1:
        raise ScriptError("bad argument #2 to 'insert' (position out of bounds)")
    for k in range(size, position - 1, -1):
        table.set(k + 1, table.get(k))
    table.set(position, args[2])
    return None


def _tbl_remove(*args: Any) -> Any:
    table = check_table(args, 0, "remove")
    size = table.length()
    position = opt_integer(args, 1, "remove", size)
    if position != size and not 1 <= position <= size + 1:
        raise ScriptError("bad argument #2 to 'remove' (position out of bounds)")
    removed = table.get(position)
    while position < size:
        table.set(position, table.get(position + 1))
        position += 1
    if position >= 1:
        table.set(position, None)
    return removed


def _tbl_concat(*args: Any) -> str:
    table = check_table(args, 0, "concat")
    separator = check_string(args, 1, "concat") if len(args) > 1 and args[1] is not None else ""
    first = opt_integer(args, 2, "concat", 1)
    last = opt_integer(args, 3, "concat", table.length())
    parts: List[str] = []
    for k in range(first, last + 1):
        value = table.get(k)
        if not (isinstance(value, str) or is_number(value)):
            raise ScriptError(
                f"invalid value (at index {k}) in table for 'concat'"
            )
        parts.append(to_string(value))
    return separator.join(parts)


def _tbl_unpack(*args: Any) -> Tuple[Any, ...]:
    table = check_table(args, 0, "unpack")
    first = opt_integer(args, 1, "unpack", 1)
    last = opt_integer(args, 2, "unpack", table.length())
    return tuple(table.get(k) for k in range(first, last + 1))


def _tbl_pack(*args: Any) -> LuaTable:
    table = LuaTable()
    for k, value in enumerate(args, start=1):
        table.set(k, value)
    table.set("n", len(args))
    return table


def _default_less(left: Any, right: Any) -> bool:
    if (is_number(left) and is_number(right)) or (
        isinstance(left, str) and isinstance(right, str)
    ):
        return left < right
    raise ScriptError(f"attempt to compare {type_name(left)} with {type_name(right)}")


def _tbl_sort(*args: Any) -> None:
    table = check_table(args, 0, "sort")
    comparator = args[1] if len(args) > 1 and args[1] is not None else None

    def less(left: Any, right: Any) -> bool:
        if comparator is None:
            return _default_less(left, right)
        results = call_value(comparator, [left, right])
        return bool(results) and is_truthy(results[0])

    def compare(left: Any, right: Any) -> int:
        if less(left, right):
            return -1
        if less(right, left):
            return 1
        return 0

    values = sorted(table.sequence(), key=functools.cmp_to_key(compare))
    for k, value in enumerate(values, start=1):
        table.set(k, value)
    return None


_TABLE_FUNCTIONS: Dict[str, Any] = {
    "concat": _tbl_concat,
    "insert": _tbl_insert,
    "pack": _tbl_pack,
    "remove": _tbl_remove,
    "sort": _tbl_sort,
    "unpack": _tbl_unpack,
}


# -- math library ------------------------------------------------------------


def _math_floor(*args: Any) -> Any:
    value = check_number(args, 0, "floor")
    if isinstance(value, int) or not math.isfinite(value):
        return value
    return math.floor(value)


def _math_ceil(*args: Any) -> Any:
    value = check_number(args, 0, "ceil")
    if isinstance(value, int) or not math.isfinite(value):
        return value
    return math.ceil(value)


def _math_abs(*args: Any) -> Any:
    return abs(check_number(args, 0, "abs"))


def _math_sqrt(*args: Any) -> float:
    value = float(check_number(args, 0, "sqrt"))
    return math.sqrt(value) if value >= 0 else math.nan


def _math_fmod(*args: Any) -> Any:
    a = check_number(args, 0, "fmod")
    b = check_number(args, 1, "fmod")
    if isinstance(a, int) and isinstance(b, int):
        if b == 0:
            raise ScriptError("bad argument #2 to 'fmod' (zero)")
        return int(math.fmod(a, b))
    return math.fmod(a, b)


def _math_extreme(name: str, pick_right) -> Any:
    def extreme(*args: Any) -> Any:
        best = check_number(args, 0, name)
        for k in range(1, len(args)):
            value = check_number(args, k, name)
            if pick_right(best, value):
                best = value
        return best

    return extreme


def _math_tointeger(*args: Any) -> Any:
    value = args[0] if args else None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _math_type(*args: Any) -> Any:
    value = check_any(args, 0, "type")
    if not is_number(value):
        return None
    return "integer" if isinstance(value, int) else "float"


def _math_library() -> LuaTable:
    library = _library(
        {
            "abs": _math_abs,
            "ceil": _math_ceil,
            "floor": _math_floor,
            "fmod": _math_fmod,
            "max": _math_extreme("max", lambda best, value: best < value),
            "min": _math_extreme("min", lambda best, value: value < best),
            "sqrt": _math_sqrt,
            "tointeger": _math_tointeger,
            "type": _math_type,
        }
    )
    library.set("huge", math.inf)
    library.set("pi", math.pi)
    library.set("maxinteger", 2**63 - 1)
    library.set("mininteger", -(2**63))
    return library


# -- environment -------------------------------------------------------------


def _library(functions: Dict[str, Any]) -> LuaTable:
    library = LuaTable()
    for name, func in functions.items():
        library.set(name, func)
    return library


def standard_globals() -> Dict[str, Any]:
    """Fresh global environment; library tables are never shared between runs."""
    env: Dict[str, Any] = dict(_BASE_FUNCTIONS)
    env["string"] = _library(_STRING_FUNCTIONS)
    env["table"] = _library(_TABLE_FUNCTIONS)
    env["math"] = _math_library()
    env["_VERSION"] = LUA_VERSION
    return env

