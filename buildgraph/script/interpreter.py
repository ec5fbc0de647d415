"""Tree-walking interpreter for configuration scripts.

Any runtime fault raises ``ScriptError`` carrying the script line where it
happened. Value representation and the conversions between script and
Python values live in ``buildgraph.script.values``; the libraries visible
to scripts live in ``buildgraph.script.stdlib``.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from buildgraph.errors import ScriptError
from buildgraph.script.grammar import (
    Assign,
    BinOp,
    Block,
    Break,
    Call,
    CallStatement,
    Do,
    ForIn,
    ForNum,
    FunctionExpr,
    If,
    Index,
    Literal,
    Local,
    LocalFunction,
    Logical,
    MethodCall,
    Name,
    Node,
    Paren,
    Repeat,
    Return,
    TableConstructor,
    UnaryOp,
    Vararg,
    While,
    parse_script,
)
from buildgraph.script.stdlib import standard_globals
from buildgraph.script.values import (
    LuaTable,
    ScriptFunction,
    call_value,
    is_number,
    is_truthy,
    to_number,
    to_string,
    type_name,
    values_equal,
)

logger = logging.getLogger("buildgraph.script.interpreter")

_VARARGS = "..."


class _Return(Exception):
    def __init__(self, values: List[Any]) -> None:
        super().__init__()
        self.values = values


class _Break(Exception):
    pass


class LuaFunction(ScriptFunction):
    """Function defined by script code, closed over its defining scopes."""

    def __init__(
        self, interpreter: "Interpreter", node: FunctionExpr, scopes: List[Dict[str, Any]]
    ) -> None:
        self.interpreter = interpreter
        self.node = node
        self.scopes = scopes
        self.name = node.name

    def invoke(self, args: List[Any]) -> List[Any]:
        node = self.node
        frame: Dict[str, Any] = {}
        for position, param in enumerate(node.params):
            frame[param] = args[position] if position < len(args) else None
        frame[_VARARGS] = list(args[len(node.params):]) if node.is_vararg else None
        return self.interpreter.call_script_function(self, frame)

    def __repr__(self) -> str:
        return f"LuaFunction({self.name!r})"


class Interpreter:
    """Executes parsed scripts against one global environment.

    Args:
        globals_: Initial global values (injected configuration values and
            host functions). They are added on top of the standard library.
    """

    def __init__(self, globals_: Optional[Dict[str, Any]] = None) -> None:
        self.globals: Dict[str, Any] = standard_globals()
        self._string_library: LuaTable = self.globals["string"]
        if globals_:
            self.globals.update(globals_)
        self._scopes: List[Dict[str, Any]] = []

    def run(self, source: str) -> None:
        """Parse and execute script text.

        Raises:
            ScriptSyntaxError: The text does not parse.
            ScriptError: A runtime fault occurred.
        """
        self.execute(parse_script(source))

    def execute(self, chunk: Block) -> None:
        """Execute a parsed chunk; a top-level ``return`` ends it early."""
        self._scopes = [{_VARARGS: []}]
        try:
            self._exec_block(chunk)
        except _Return:
            pass
        except _Break:
            raise ScriptError("break outside a loop") from None
        except RecursionError:
            logger.debug("Script exceeded the interpreter recursion limit")
            raise ScriptError("stack overflow") from None
        finally:
            self._scopes = []

    def call_script_function(self, func: LuaFunction, frame: Dict[str, Any]) -> List[Any]:
        saved = self._scopes
        self._scopes = func.scopes + [frame]
        try:
            self._exec_statements(func.node.body.statements)
        except _Return as ret:
            return ret.values
        except _Break:
            raise ScriptError("break outside a loop", func.node.line) from None
        finally:
            self._scopes = saved
        return []

    # scopes

    def _lookup(self, name: str) -> Any:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return self.globals.get(name)

    def _assign_name(self, name: str, value: Any) -> None:
        for scope in reversed(self._scopes):
            if name in scope:
                scope[name] = value
                return
        if value is None:
            self.globals.pop(name, None)
        else:
            self.globals[name] = value

    def _varargs(self, node: Node) -> List[Any]:
        for scope in reversed(self._scopes):
            if _VARARGS in scope:
                if scope[_VARARGS] is None:
                    break
                return list(scope[_VARARGS])
        raise ScriptError("cannot use '...' outside a vararg function", node.line)

    # statements

    def _exec_block(self, block: Block, scope: Optional[Dict[str, Any]] = None) -> None:
        self._scopes.append(scope if scope is not None else {})
        try:
            self._exec_statements(block.statements)
        finally:
            self._scopes.pop()

    def _exec_statements(self, statements: Sequence[Node]) -> None:
        for statement in statements:
            self._exec(statement)

    def _exec(self, node: Node) -> None:
        if isinstance(node, CallStatement):
            self._call(node.call)
        elif isinstance(node, Local):
            values = self._pad(self._eval_multi(node.values), len(node.names))
            for name, value in zip(node.names, values):
                self._scopes[-1][name] = value
        elif isinstance(node, LocalFunction):
            self._scopes[-1][node.name] = None
            self._scopes[-1][node.name] = self._make_function(node.func)
        elif isinstance(node, Assign):
            values = self._pad(self._eval_multi(node.values), len(node.targets))
            for target, value in zip(node.targets, values):
                self._assign(target, value)
        elif isinstance(node, If):
            for condition, body in node.branches:
                if is_truthy(self._eval(condition)):
                    self._exec_block(body)
                    return
            if node.orelse is not None:
                self._exec_block(node.orelse)
        elif isinstance(node, While):
            while is_truthy(self._eval(node.condition)):
                try:
                    self._exec_block(node.body)
                except _Break:
                    break
        elif isinstance(node, Repeat):
            self._exec_repeat(node)
        elif isinstance(node, Do):
            self._exec_block(node.body)
        elif isinstance(node, ForIn):
            self._exec_for_in(node)
        elif isinstance(node, ForNum):
            self._exec_for_num(node)
        elif isinstance(node, Return):
            raise _Return(self._eval_multi(node.values))
        elif isinstance(node, Break):
            raise _Break()
        else:
            raise ScriptError(f"unsupported statement {type(node).__name__}", node.line)

    def _exec_repeat(self, node: Repeat) -> None:
        # The condition can see locals declared in the body.
        while True:
            self._scopes.append({})
            try:
                try:
                    self._exec_statements(node.body.statements)
                except _Break:
                    break
                if is_truthy(self._eval(node.condition)):
                    break
            finally:
                self._scopes.pop()

    def _exec_for_in(self, node: ForIn) -> None:
        func, state, control = self._pad(self._eval_multi(node.iterables), 3)[:3]
        if not callable(func):
            raise ScriptError(
                f"attempt to iterate over a {type_name(func)} value "
                "(use ipairs or pairs)",
                node.line,
            )
        while True:
            try:
                results = call_value(func, [state, control])
            except ScriptError as exc:
                if exc.line is None:
                    raise ScriptError(str(exc), node.line) from None
                raise
            if not results or results[0] is None:
                return
            control = results[0]
            values = self._pad(results, len(node.names))
            try:
                self._exec_block(node.body, dict(zip(node.names, values)))
            except _Break:
                return

    def _exec_for_num(self, node: ForNum) -> None:
        start = self._number_operand(self._eval(node.start), "'for' initial value", node.line)
        stop = self._number_operand(self._eval(node.stop), "'for' limit", node.line)
        step = 1
        if node.step is not None:
            step = self._number_operand(self._eval(node.step), "'for' step", node.line)
        if step == 0:
            raise ScriptError("'for' step is zero", node.line)
        current = start
        while (step > 0 and current <= stop) or (step < 0 and current >= stop):
            try:
                self._exec_block(node.body, {node.name: current})
            except _Break:
                return
            current += step

    def _assign(self, target: Node, value: Any) -> None:
        if isinstance(target, Name):
            self._assign_name(target.name, value)
            return
        assert isinstance(target, Index)
        obj = self._eval(target.obj)
        if not isinstance(obj, LuaTable):
            raise ScriptError(
                f"attempt to index a {type_name(obj)} value{self._describe(target.obj)}",
                target.line,
            )
        try:
            obj.set(self._eval(target.key), value)
        except ScriptError as exc:
            raise ScriptError(str(exc), target.line) from None

    # expressions

    @staticmethod
    def _pad(values: List[Any], wanted: int) -> List[Any]:
        if len(values) < wanted:
            values = values + [None] * (wanted - len(values))
        return values

    def _eval_multi(self, nodes: Sequence[Node]) -> List[Any]:
        """Evaluate an expression list; the last expression may yield many values."""
        if not nodes:
            return []
        values = [self._eval(n) for n in nodes[:-1]]
        last = nodes[-1]
        if isinstance(last, (Call, MethodCall)):
            values.extend(self._call(last))
        elif isinstance(last, Vararg):
            values.extend(self._varargs(last))
        else:
            values.append(self._eval(last))
        return values

    def _eval(self, node: Node) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Name):
            return self._lookup(node.name)
        if isinstance(node, Index):
            obj = self._eval(node.obj)
            return self._index(obj, self._eval(node.key), node)
        if isinstance(node, (Call, MethodCall)):
            results = self._call(node)
            return results[0] if results else None
        if isinstance(node, Paren):
            return self._eval(node.expr)
        if isinstance(node, Vararg):
            values = self._varargs(node)
            return values[0] if values else None
        if isinstance(node, FunctionExpr):
            return self._make_function(node)
        if isinstance(node, TableConstructor):
            return self._eval_table(node)
        if isinstance(node, Logical):
            left = self._eval(node.left)
            if node.op == "and":
                return self._eval(node.right) if is_truthy(left) else left
            return left if is_truthy(left) else self._eval(node.right)
        if isinstance(node, UnaryOp):
            return self._eval_unary(node)
        if isinstance(node, BinOp):
            if node.op == "..":
                return self._eval_concat(node)
            return self._eval_binop(node)
        raise ScriptError(f"unsupported expression {type(node).__name__}", node.line)

    def _make_function(self, node: FunctionExpr) -> LuaFunction:
        return LuaFunction(self, node, list(self._scopes))

    def _index(self, obj: Any, key: Any, node: Node) -> Any:
        if isinstance(obj, LuaTable):
            return obj.get(key)
        if isinstance(obj, str):
            return self._string_library.get(key)
        target = node.obj if isinstance(node, Index) else node
        raise ScriptError(
            f"attempt to index a {type_name(obj)} value{self._describe(target)}",
            node.line,
        )

    @staticmethod
    def _describe(node: Node) -> str:
        if isinstance(node, Name):
            return f" (global '{node.name}')"
        if isinstance(node, Index) and isinstance(node.key, Literal):
            return f" (field '{to_string(node.key.value)}')"
        return ""

    def _call(self, node: Node) -> List[Any]:
        if isinstance(node, MethodCall):
            obj = self._eval(node.obj)
            func = self._index(obj, node.method, node)
            args = [obj] + self._eval_multi(node.args)
            label = f" (method '{node.method}')"
        else:
            assert isinstance(node, Call)
            func = self._eval(node.func)
            args = self._eval_multi(node.args)
            label = self._describe(node.func)
        if not callable(func):
            raise ScriptError(f"attempt to call a {type_name(func)} value{label}", node.line)
        try:
            return call_value(func, args)
        except ScriptError as exc:
            if exc.line is None:
                raise ScriptError(str(exc), node.line) from None
            raise

    def _eval_table(self, node: TableConstructor) -> LuaTable:
        table = LuaTable()
        position = 1
        for number, (key_node, value_node) in enumerate(node.items, start=1):
            if key_node is None:
                if number == len(node.items):
                    values = self._eval_multi([value_node])
                else:
                    values = [self._eval(value_node)]
                for value in values:
                    table.set(position, value)
                    position += 1
                continue
            key = self._eval(key_node)
            try:
                table.set(key, self._eval(value_node))
            except ScriptError as exc:
                raise ScriptError(str(exc), node.line or key_node.line) from None
        return table

    def _eval_unary(self, node: UnaryOp) -> Any:
        value = self._eval(node.operand)
        if node.op == "not":
            return not is_truthy(value)
        if node.op == "-":
            return -self._number_operand(value, "perform arithmetic on", node.line)
        # "#"
        if isinstance(value, str):
            return len(value.encode("utf-8"))
        if isinstance(value, LuaTable):
            return value.length()
        raise ScriptError(f"attempt to get length of a {type_name(value)} value", node.line)

    @staticmethod
    def _number_operand(value: Any, what: str, line: Optional[int]) -> Any:
        number = to_number(value)
        if number is None:
            if what.startswith("'for'"):
                raise ScriptError(f"{what} must be a number", line)
            raise ScriptError(f"attempt to {what} a {type_name(value)} value", line)
        return number

    def _eval_binop(self, node: BinOp) -> Any:
        op = node.op
        left = self._eval(node.left)
        right = self._eval(node.right)

        if op == "==":
            return values_equal(left, right)
        if op == "~=":
            return not values_equal(left, right)
        if op in ("<", "<=", ">", ">="):
            return self._compare(op, left, right, node.line)

        a = self._number_operand(left, "perform arithmetic on", node.line)
        b = self._number_operand(right, "perform arithmetic on", node.line)
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "/":
            return _divide(a, b)
        if op == "^":
            try:
                return math.pow(a, b)
            except ValueError:
                return math.nan
            except OverflowError:
                return math.inf
        if op == "//":
            if b == 0:
                if isinstance(a, int) and isinstance(b, int):
                    raise ScriptError("attempt to perform 'n//0'", node.line)
                return _divide(a, b)
            return a // b
        # "%"
        if b == 0:
            if isinstance(a, int) and isinstance(b, int):
                raise ScriptError("attempt to perform 'n%0'", node.line)
            return math.nan
        return a % b

    @staticmethod
    def _compare(op: str, left: Any, right: Any, line: Optional[int]) -> bool:
        comparable = (is_number(left) and is_number(right)) or (
            isinstance(left, str) and isinstance(right, str)
        )
        if not comparable:
            raise ScriptError(
                f"attempt to compare {type_name(left)} with {type_name(right)}", line
            )
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right

    def _eval_concat(self, node: BinOp) -> str:
        # ".." is right associative; walk the chain instead of recursing.
        operands: List[Node] = []
        current: Node = node
        while isinstance(current, BinOp) and current.op == "..":
            operands.append(current.left)
            current = current.right
        operands.append(current)

        parts: List[str] = []
        for operand in operands:
            value = self._eval(operand)
            if not (isinstance(value, str) or is_number(value)):
                raise ScriptError(
                    f"attempt to concatenate a {type_name(value)} value", node.line
                )
            parts.append(to_string(value))
        return "".join(parts)


def _divide(a: Any, b: Any) -> float:
    if b == 0:
        if a == 0 or (isinstance(a, float) and math.isnan(a)):
            return math.nan
        return math.inf if (a > 0) == (math.copysign(1.0, b) > 0) else -math.inf
    return a / b
