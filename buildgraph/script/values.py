"""Script values and the conversions shared by the interpreter and libraries.

Values map onto Python as follows: ``nil`` is ``None``, booleans and
strings are themselves, numbers are ``int`` or ``float``, tables are
``LuaTable`` instances and functions are either ``ScriptFunction`` objects
(defined in a script) or plain Python callables (host functions and
library functions). Only ``nil`` and ``false`` are falsy.

Python callables receive the evaluated arguments positionally. Returning
``None`` yields no values, a ``tuple`` yields several values and anything
else yields exactly one.
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from buildgraph.errors import ScriptError

HostFunction = Callable[..., Any]

_DECIMAL_RE = re.compile(r"[0-9]+\.?[0-9]*(?:[eE][-+]?[0-9]+)?|\.[0-9]+(?:[eE][-+]?[0-9]+)?")
_HEX_RE = re.compile(r"0[xX][0-9a-fA-F]+")
_LUA_SPACE = " \t\n\r\f\v"


class LuaTable:
    """Table value; integer keys ``1..n`` form its sequence part."""

    def __init__(self, items: Optional[Sequence[Any]] = None) -> None:
        self._data: Dict[Any, Any] = {}
        for i, value in enumerate(items or (), start=1):
            self.set(i, value)

    @staticmethod
    def _normalize_key(key: Any) -> Any:
        if isinstance(key, float) and key.is_integer():
            return int(key)
        return key

    def get(self, key: Any) -> Any:
        return self._data.get(self._normalize_key(key))

    def set(self, key: Any, value: Any) -> None:
        if key is None:
            raise ScriptError("table index is nil")
        if isinstance(key, float) and math.isnan(key):
            raise ScriptError("table index is NaN")
        key = self._normalize_key(key)
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value

    def length(self) -> int:
        n = 0
        while (n + 1) in self._data:
            n += 1
        return n

    def sequence(self) -> List[Any]:
        return [self._data[i] for i in range(1, self.length() + 1)]

    def items(self) -> List[Tuple[Any, Any]]:
        """Sequence part first, then the remaining keys in insertion order."""
        n = self.length()
        head = [(i, self._data[i]) for i in range(1, n + 1)]
        tail = [
            (k, v)
            for k, v in self._data.items()
            if not (type(k) is int and 1 <= k <= n)
        ]
        return head + tail

    def next(self, key: Any) -> Optional[Tuple[Any, Any]]:
        """The entry following ``key`` in ``items`` order, None at the end."""
        entries = self.items()
        if key is None:
            return entries[0] if entries else None
        key = self._normalize_key(key)
        for position, (existing, _) in enumerate(entries):
            if existing == key and type(existing) is type(key):
                return entries[position + 1] if position + 1 < len(entries) else None
        raise ScriptError("invalid key to 'next'")

    def __repr__(self) -> str:
        return f"LuaTable({self._data!r})"


class ScriptFunction:
    """Base class of functions defined by script code."""

    name: str = "?"

    def invoke(self, args: List[Any]) -> List[Any]:
        raise NotImplementedError

    def __call__(self, *args: Any) -> Any:
        return pack_results(self.invoke(list(args)))


def unpack_results(result: Any) -> List[Any]:
    """Turn a Python callable's return value into a list of script values."""
    if result is None:
        return []
    if isinstance(result, tuple):
        return list(result)
    return [result]


def pack_results(values: List[Any]) -> Any:
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return tuple(values)


def call_value(func: Any, args: List[Any]) -> List[Any]:
    """Call a script or Python function and return every result."""
    if isinstance(func, ScriptFunction):
        return func.invoke(args)
    if callable(func):
        return unpack_results(func(*args))
    raise ScriptError(f"attempt to call a {type_name(func)} value")


def is_truthy(value: Any) -> bool:
    return value is not None and value is not False


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def type_name(value: Any) -> str:
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, LuaTable):
        return "table"
    if callable(value):
        return "function"
    return "userdata"


def format_number(value: Any) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if math.isnan(value):
        return "nan" if math.copysign(1.0, value) > 0 else "-nan"
    text = "%.14g" % value
    if all(ch in "-0123456789" for ch in text):
        text += ".0"
    return text


def to_string(value: Any) -> str:
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    return f"{type_name(value)}: 0x{id(value):08x}"


def to_number(value: Any) -> Optional[Any]:
    """Lua-style string to number coercion; None if not convertible.

    Only Lua numerals are accepted (optional sign, decimal or hexadecimal
    integers and decimal floats), so ``"1_000"``, ``"inf"`` and ``"nan"``
    do not convert.
    """
    if is_number(value):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip(_LUA_SPACE)
    sign = 1
    if text[:1] in ("-", "+"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if _HEX_RE.fullmatch(text):
        return sign * int(text, 16)
    if not _DECIMAL_RE.fullmatch(text):
        return None
    if any(ch in text for ch in ".eE"):
        return sign * float(text)
    return sign * int(text)


def to_integer(value: Any) -> Optional[int]:
    """Number (or numeric string) with an exact integer value, else None."""
    number = to_number(value)
    if isinstance(number, float):
        if not number.is_integer():
            return None
        return int(number)
    return number


def values_equal(left: Any, right: Any) -> bool:
    if is_number(left) and is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    if isinstance(left, LuaTable) or callable(left):
        return left is right
    return left == right


# -- argument checks ---------------------------------------------------------


def _bad_argument(index: int, func: str, expected: str, value: Any) -> ScriptError:
    got = "no value" if value is _MISSING else type_name(value)
    return ScriptError(f"bad argument #{index + 1} to '{func}' ({expected} expected, got {got})")


_MISSING = object()


def _arg(args: Sequence[Any], index: int) -> Any:
    return args[index] if index < len(args) else _MISSING


def check_string(args: Sequence[Any], index: int, func: str) -> str:
    """Return argument ``index`` (0-based) as a string.

    Numbers are converted like Lua does; anything else raises
    ``ScriptError``.
    """
    value = _arg(args, index)
    if isinstance(value, str):
        return value
    if is_number(value):
        return format_number(value)
    raise _bad_argument(index, func, "string", value)


def opt_string(args: Sequence[Any], index: int, func: str) -> Optional[str]:
    if index >= len(args) or args[index] is None:
        return None
    return check_string(args, index, func)


def opt_bool(args: Sequence[Any], index: int, default: bool = True) -> bool:
    """Missing or nil arguments yield ``default``; anything else is truthiness."""
    if index >= len(args) or args[index] is None:
        return default
    return is_truthy(args[index])


def check_number(args: Sequence[Any], index: int, func: str) -> Any:
    value = _arg(args, index)
    number = to_number(value) if value is not _MISSING else None
    if number is None:
        raise _bad_argument(index, func, "number", value)
    return number


def check_integer(args: Sequence[Any], index: int, func: str) -> int:
    value = _arg(args, index)
    number = to_integer(value) if value is not _MISSING else None
    if number is None:
        if value is not _MISSING and to_number(value) is not None:
            raise ScriptError(
                f"bad argument #{index + 1} to '{func}' (number has no integer representation)"
            )
        raise _bad_argument(index, func, "number", value)
    return number


def opt_integer(args: Sequence[Any], index: int, func: str, default: int) -> int:
    if index >= len(args) or args[index] is None:
        return default
    return check_integer(args, index, func)


def check_table(args: Sequence[Any], index: int, func: str) -> LuaTable:
    value = _arg(args, index)
    if not isinstance(value, LuaTable):
        raise _bad_argument(index, func, "table", value)
    return value


def check_any(args: Sequence[Any], index: int, func: str) -> Any:
    if index >= len(args):
        raise ScriptError(f"bad argument #{index + 1} to '{func}' (value expected)")
    return args[index]
