"""Grammar and syntax tree for ``build.lua`` configuration scripts.

Scripts are written in Lua: function calls (including the ``f "text"``,
``f {table}`` and ``obj:method()`` forms), ``local`` declarations,
assignments, ``function`` definitions with varargs and ``return``,
``if``/``elseif``/``else``, ``while``, ``repeat``/``until``, numeric and
generic ``for`` loops, ``do`` blocks and ``break``. Expressions cover
literals, tables, anonymous functions, arithmetic (including ``//`` and
``^``), comparison and logic operators, ``..`` concatenation and ``#``
length.

The text is parsed with a Lark LALR parser and transformed into the small
dataclass tree below, which is what the interpreter walks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from lark import Lark, Token
from lark.exceptions import LarkError, VisitError
from lark.visitors import Transformer_NonRecursive

from buildgraph.errors import ScriptSyntaxError

logger = logging.getLogger("buildgraph.script.grammar")

SCRIPT_GRAMMAR = r"""
start: block

block: statement* return_stat?

?statement: call                                          -> call_stat
          | method_call                                   -> call_stat
          | "local" namelist ("=" exprlist)?              -> local_stat
          | "local" "function" NAME funcbody              -> local_function_stat
          | "function" funcname funcbody                  -> function_stat
          | prefixexp ("," prefixexp)* "=" exprlist       -> assign_stat
          | "if" expr "then" block elseif_clause* else_clause? "end" -> if_stat
          | "while" expr "do" block "end"                 -> while_stat
          | "repeat" block "until" expr                   -> repeat_stat
          | "do" block "end"                              -> do_stat
          | "for" namelist "in" exprlist "do" block "end" -> for_in_stat
          | "for" NAME "=" expr "," expr ("," expr)? "do" block "end" -> for_num_stat
          | "break"                                       -> break_stat
          | ";"                                           -> empty_stat

return_stat: "return" [exprlist] ";"?

elseif_clause: "elseif" expr "then" block
else_clause: "else" block

funcname: NAME ("." NAME)* method_name?
method_name: ":" NAME
funcbody: "(" [parlist] ")" block "end"
parlist: param ("," param)*
param: NAME                       -> param_name
     | "..."                      -> param_vararg

namelist: NAME ("," NAME)*
exprlist: expr ("," expr)*

?prefixexp: var
          | call
          | method_call

?var: NAME                        -> name
    | prefixexp "[" expr "]"      -> index
    | prefixexp "." NAME          -> attr

call: prefixexp args
method_call: prefixexp ":" NAME args

args: "(" [exprlist] ")"
    | table
    | string

?expr: or_expr

?or_expr: and_expr
        | or_expr "or" and_expr          -> or_op

?and_expr: cmp_expr
         | and_expr "and" cmp_expr       -> and_op

?cmp_expr: concat_expr
         | cmp_expr "==" concat_expr     -> eq
         | cmp_expr "~=" concat_expr     -> ne
         | cmp_expr "<" concat_expr      -> lt
         | cmp_expr "<=" concat_expr     -> le
         | cmp_expr ">" concat_expr      -> gt
         | cmp_expr ">=" concat_expr     -> ge

?concat_expr: sum_expr
            | sum_expr ".." concat_expr  -> concat

?sum_expr: product
         | sum_expr "+" product          -> add
         | sum_expr "-" product          -> sub

?product: unary
        | product "*" unary              -> mul
        | product "/" unary              -> div
        | product "//" unary             -> floordiv
        | product "%" unary              -> mod

?unary: power
      | "not" unary                      -> not_op
      | "-" unary                        -> neg
      | "#" unary                        -> length

?power: atom
      | atom "^" unary                   -> pow

?atom: "nil"                             -> nil
     | "true"                            -> true
     | "false"                           -> false
     | NUMBER                            -> number
     | "..."                             -> vararg
     | "function" funcbody               -> function_expr
     | string
     | table
     | prefixexp
     | "(" expr ")"                      -> paren

string: STRING

table: "{" (table_field (_fieldsep table_field)* _fieldsep?)? "}"

?table_field: NAME "=" expr              -> named_field
            | "[" expr "]" "=" expr      -> keyed_field
            | expr                       -> item_field

_fieldsep: "," | ";"

NAME: /[A-Za-z_][A-Za-z0-9_]*/
NUMBER: /0[xX][0-9a-fA-F]+|\d+(\.\d+)?([eE][-+]?\d+)?/
STRING: /"(\\.|[^"\\\n])*"|'(\\.|[^'\\\n])*'|\[\[[\s\S]*?\]\]/
COMMENT: /--\[\[[\s\S]*?\]\]|--[^\n]*/

%import common.WS
%ignore WS
%ignore COMMENT
"""


# -- syntax tree -------------------------------------------------------------


@dataclass
class Node:
    line: Optional[int] = field(default=None, kw_only=True)


@dataclass
class Literal(Node):
    value: Any


@dataclass
class Name(Node):
    name: str


@dataclass
class Vararg(Node):
    pass


@dataclass
class Index(Node):
    obj: Node
    key: Node


@dataclass
class Paren(Node):
    """Parenthesised expression; truncates multiple results to one."""

    expr: Node


@dataclass
class Call(Node):
    func: Node
    args: List[Node]


@dataclass
class MethodCall(Node):
    obj: Node
    method: str
    args: List[Node]


@dataclass
class FunctionExpr(Node):
    params: List[str]
    is_vararg: bool
    body: "Block"
    name: str = "anonymous"


@dataclass
class TableConstructor(Node):
    # A None key marks a positional item.
    items: List[Tuple[Optional[Node], Node]]


@dataclass
class BinOp(Node):
    op: str
    left: Node
    right: Node


@dataclass
class UnaryOp(Node):
    op: str
    operand: Node


@dataclass
class Logical(Node):
    op: str  # "and" / "or"
    left: Node
    right: Node


@dataclass
class Block(Node):
    statements: List[Node]


@dataclass
class CallStatement(Node):
    call: Node


@dataclass
class Local(Node):
    names: List[str]
    values: List[Node]


@dataclass
class LocalFunction(Node):
    name: str
    func: FunctionExpr


@dataclass
class Assign(Node):
    targets: List[Node]
    values: List[Node]


@dataclass
class If(Node):
    branches: List[Tuple[Node, Block]]
    orelse: Optional[Block]


@dataclass
class While(Node):
    condition: Node
    body: Block


@dataclass
class Repeat(Node):
    body: Block
    condition: Node


@dataclass
class Do(Node):
    body: Block


@dataclass
class ForIn(Node):
    names: List[str]
    iterables: List[Node]
    body: Block


@dataclass
class ForNum(Node):
    name: str
    start: Node
    stop: Node
    step: Optional[Node]
    body: Block


@dataclass
class Return(Node):
    values: List[Node]


@dataclass
class Break(Node):
    pass


# -- tree building -----------------------------------------------------------

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "\n": "\n",
}
_ESCAPE_RE = re.compile(r"\\(x[0-9a-fA-F]{2}|\d{1,3}|.)", re.DOTALL)


def decode_string(raw: str) -> str:
    """Turn a string token (quotes included) into its value."""
    if raw.startswith("[["):
        body = raw[2:-2]
        # A newline right after the opening bracket is not part of the string.
        if body.startswith("\r\n"):
            return body[2:]
        if body.startswith("\n"):
            return body[1:]
        return body

    def replace(match: "re.Match[str]") -> str:
        esc = match.group(1)
        if esc[0] == "x":
            return chr(int(esc[1:], 16))
        if esc.isdigit():
            return chr(int(esc))
        if esc in _ESCAPES:
            return _ESCAPES[esc]
        raise ScriptSyntaxError(f"invalid escape sequence '\\{esc}'")

    return _ESCAPE_RE.sub(replace, raw[1:-1])


def parse_number(raw: str) -> Any:
    if raw[:2] in ("0x", "0X"):
        return int(raw, 16)
    if any(ch in raw for ch in ".eE"):
        return float(raw)
    return int(raw)


def _line(item: Any) -> Optional[int]:
    if isinstance(item, Token):
        return item.line
    return getattr(item, "line", None)


class _TreeBuilder(Transformer_NonRecursive):
    """Transform the Lark parse tree into ``Node`` instances.

    The non-recursive transformer keeps deeply nested expressions (long
    ``..`` chains) within the Python stack.
    """

    def start(self, children):
        return children[0]

    def block(self, children):
        statements = [c for c in children if c is not None]
        return Block(statements, line=_line(statements[0]) if statements else None)

    # statements

    def call_stat(self, children):
        call = children[0]
        return CallStatement(call, line=call.line)

    def local_stat(self, children):
        names = children[0]
        values = children[1] if len(children) > 1 else []
        return Local([str(n) for n in names], values, line=_line(names[0]))

    def local_function_stat(self, children):
        token, (params, is_vararg, body) = children
        func = FunctionExpr(params, is_vararg, body, name=str(token), line=token.line)
        return LocalFunction(str(token), func, line=token.line)

    def function_stat(self, children):
        (names, method), (params, is_vararg, body) = children
        first = names[0]
        target: Node = Name(str(first), line=first.line)
        for token in names[1:]:
            target = Index(target, Literal(str(token), line=token.line), line=first.line)
        full_name = ".".join(str(t) for t in names)
        if method is not None:
            target = Index(target, Literal(method, line=first.line), line=first.line)
            params = ["self"] + params
            full_name = f"{full_name}:{method}"
        func = FunctionExpr(params, is_vararg, body, name=full_name, line=first.line)
        return Assign([target], [func], line=first.line)

    def funcname(self, children):
        names = [c for c in children if isinstance(c, Token)]
        method = next((c for c in children if isinstance(c, str) and not isinstance(c, Token)), None)
        return (names, method)

    def method_name(self, children):
        return str(children[0])

    def funcbody(self, children):
        parlist, body = children
        params, is_vararg = parlist if parlist is not None else ([], False)
        return (params, is_vararg, body)

    def parlist(self, children):
        params: List[str] = []
        is_vararg = False
        for position, param in enumerate(children):
            if param is None:
                if position != len(children) - 1:
                    raise ScriptSyntaxError("'...' must be the last parameter")
                is_vararg = True
            else:
                params.append(param)
        return (params, is_vararg)

    def param_name(self, children):
        return str(children[0])

    def param_vararg(self, children):
        return None

    def assign_stat(self, children):
        *targets, values = children
        for target in targets:
            if not isinstance(target, (Name, Index)):
                raise ScriptSyntaxError(
                    "cannot assign to this expression", line=_line(target)
                )
        return Assign(targets, values, line=_line(targets[0]))

    def if_stat(self, children):
        condition, body, *rest = children
        branches = [(condition, body)]
        orelse = None
        for clause in rest:
            if isinstance(clause, Block):
                orelse = clause
            else:
                branches.append(clause)
        return If(branches, orelse, line=_line(condition))

    def elseif_clause(self, children):
        return (children[0], children[1])

    def else_clause(self, children):
        return children[0]

    def while_stat(self, children):
        condition, body = children
        return While(condition, body, line=_line(condition))

    def repeat_stat(self, children):
        body, condition = children
        return Repeat(body, condition, line=_line(condition))

    def do_stat(self, children):
        return Do(children[0], line=children[0].line)

    def for_in_stat(self, children):
        names, iterables, body = children
        return ForIn([str(n) for n in names], iterables, body, line=_line(names[0]))

    def for_num_stat(self, children):
        name, start, stop, *rest = children
        body = rest[-1]
        step = rest[0] if len(rest) == 2 else None
        return ForNum(str(name), start, stop, step, body, line=_line(name))

    def return_stat(self, children):
        values = children[0] if children and children[0] is not None else []
        return Return(values, line=_line(values[0]) if values else None)

    def break_stat(self, children):
        return Break()

    def empty_stat(self, children):
        return None

    def namelist(self, children):
        return list(children)

    def exprlist(self, children):
        return list(children)

    # prefix expressions

    def name(self, children):
        token = children[0]
        return Name(str(token), line=token.line)

    def index(self, children):
        obj, key = children
        return Index(obj, key, line=obj.line)

    def attr(self, children):
        obj, token = children
        return Index(obj, Literal(str(token), line=token.line), line=obj.line)

    def paren(self, children):
        expr = children[0]
        return Paren(expr, line=_line(expr))

    def call(self, children):
        func, args = children
        return Call(func, args, line=func.line)

    def method_call(self, children):
        obj, token, args = children
        return MethodCall(obj, str(token), args, line=obj.line)

    def args(self, children):
        value = children[0] if children else None
        if value is None:
            return []
        if isinstance(value, list):
            return value
        return [value]

    def function_expr(self, children):
        params, is_vararg, body = children[0]
        return FunctionExpr(params, is_vararg, body, line=body.line)

    def vararg(self, children):
        return Vararg()

    # operators

    def _binop(self, op, children):
        left, right = children
        return BinOp(op, left, right, line=_line(left))

    def eq(self, children):
        return self._binop("==", children)

    def ne(self, children):
        return self._binop("~=", children)

    def lt(self, children):
        return self._binop("<", children)

    def le(self, children):
        return self._binop("<=", children)

    def gt(self, children):
        return self._binop(">", children)

    def ge(self, children):
        return self._binop(">=", children)

    def concat(self, children):
        return self._binop("..", children)

    def add(self, children):
        return self._binop("+", children)

    def sub(self, children):
        return self._binop("-", children)

    def mul(self, children):
        return self._binop("*", children)

    def div(self, children):
        return self._binop("/", children)

    def floordiv(self, children):
        return self._binop("//", children)

    def mod(self, children):
        return self._binop("%", children)

    def pow(self, children):
        return self._binop("^", children)

    def or_op(self, children):
        left, right = children
        return Logical("or", left, right, line=_line(left))

    def and_op(self, children):
        left, right = children
        return Logical("and", left, right, line=_line(left))

    def not_op(self, children):
        return UnaryOp("not", children[0], line=_line(children[0]))

    def neg(self, children):
        return UnaryOp("-", children[0], line=_line(children[0]))

    def length(self, children):
        return UnaryOp("#", children[0], line=_line(children[0]))

    # atoms

    def nil(self, children):
        return Literal(None)

    def true(self, children):
        return Literal(True)

    def false(self, children):
        return Literal(False)

    def number(self, children):
        token = children[0]
        return Literal(parse_number(str(token)), line=token.line)

    def string(self, children):
        token = children[0]
        try:
            value = decode_string(str(token))
        except ScriptSyntaxError as exc:
            raise ScriptSyntaxError(str(exc), line=token.line) from None
        return Literal(value, line=token.line)

    def table(self, children):
        return TableConstructor(list(children))

    def named_field(self, children):
        token, value = children
        return (Literal(str(token), line=token.line), value)

    def keyed_field(self, children):
        key, value = children
        return (key, value)

    def item_field(self, children):
        return (None, children[0])


_PARSER = Lark(SCRIPT_GRAMMAR, parser="lalr", maybe_placeholders=True)


def parse_script(text: str) -> Block:
    """Parse script text into a ``Block``.

    Raises:
        ScriptSyntaxError: If the text is not a valid script.
    """
    try:
        tree = _PARSER.parse(text)
    except RecursionError:
        raise ScriptSyntaxError("script is nested too deeply") from None
    except LarkError as exc:
        line = getattr(exc, "line", None)
        if line is not None and line < 1:
            line = None
        logger.debug("Script parse failed: %s", exc)
        raise ScriptSyntaxError(_first_line(str(exc)), line=line) from exc

    try:
        return _TreeBuilder().transform(tree)
    except VisitError as exc:
        if isinstance(exc.orig_exc, ScriptSyntaxError):
            raise exc.orig_exc from None
        if isinstance(exc.orig_exc, RecursionError):
            raise ScriptSyntaxError("script is nested too deeply") from None
        raise
    except RecursionError:
        raise ScriptSyntaxError("script is nested too deeply") from None


def _first_line(message: str) -> str:
    return message.strip().splitlines()[0] if message.strip() else "syntax error"
