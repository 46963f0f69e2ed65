# expressions.py
"""
Step conditions and ${{ }} placeholders.

Grammar (no arithmetic, no implicit status functions):

    expr    := or
    or      := and ('||' and)*
    and     := not ('&&' not)*
    not     := '!' not | compare
    compare := primary (('==' | '!=' | '<' | '<=' | '>' | '>=') primary)?
    primary := literal | call | ref | '(' expr ')'
    ref     := NAME ('.' NAME | '[' STRING ']')*
    call    := NAME '(' ')'

Values follow CI conventions: missing/None, '', 0 and false are falsy;
equality compares the rendered string forms.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Tuple

from .errors import ConfigurationError

TEMPLATE_RE = re.compile(r"\$\{\{(.*?)\}\}", re.DOTALL)

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<op>==|!=|<=|>=|&&|\|\||[<>!().\[\]])
  | (?P<string>'(?:[^']|'')*')
  | (?P<number>\d+(?:\.\d+)?(?![\w-]))
  | (?P<name>[A-Za-z_][A-Za-z0-9_-]*)
    """,
    re.VERBOSE,
)

KEYWORDS = {"true": True, "false": False, "null": None}


def stringify(value: Any) -> str:
    """Render a context value the way it lands in a command line."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    return bool(value)


# ----------------------------------------------------------------------
# AST
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Ref:
    path: Tuple[str, ...]

    def __str__(self) -> str:
        return ".".join(self.path)


@dataclass(frozen=True)
class Call:
    name: str


@dataclass(frozen=True)
class Not:
    operand: Any


@dataclass(frozen=True)
class BinOp:
    op: str
    left: Any
    right: Any


FUNCTIONS = ("success", "failure")


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------

def _tokenize(source: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    while pos < len(source):
        m = _TOKEN_RE.match(source, pos)
        if not m:
            raise ConfigurationError(
                f"unexpected character {source[pos]!r} in expression",
                expression=source,
            )
        pos = m.end()
        kind = m.lastgroup
        if kind != "ws":
            tokens.append((kind, m.group(kind)))
    return tokens


class _Parser:
    def __init__(self, source: str):
        self.source = source
        self.tokens = _tokenize(source)
        self.pos = 0

    def _peek(self) -> Tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, *ops: str) -> str | None:
        tok = self._peek()
        if tok and tok[0] == "op" and tok[1] in ops:
            self.pos += 1
            return tok[1]
        return None

    def _expect(self, op: str) -> None:
        if not self._accept(op):
            self._fail(f"expected '{op}'")

    def _fail(self, message: str):
        tok = self._peek()
        where = f"near {tok[1]!r}" if tok else "at end of expression"
        raise ConfigurationError(f"{message} {where}", expression=self.source)

    def parse(self):
        if not self.tokens:
            raise ConfigurationError("empty expression", expression=self.source)
        node = self._or()
        if self._peek() is not None:
            self._fail("unexpected token")
        return node

    def _or(self):
        node = self._and()
        while self._accept("||"):
            node = BinOp("||", node, self._and())
        return node

    def _and(self):
        node = self._not()
        while self._accept("&&"):
            node = BinOp("&&", node, self._not())
        return node

    def _not(self):
        if self._accept("!"):
            return Not(self._not())
        return self._compare()

    def _compare(self):
        node = self._primary()
        op = self._accept("==", "!=", "<", "<=", ">", ">=")
        if op:
            node = BinOp(op, node, self._primary())
        return node

    def _primary(self):
        if self._accept("("):
            node = self._or()
            self._expect(")")
            return node

        tok = self._peek()
        if tok is None:
            self._fail("expected a value")
        kind, text = tok

        if kind == "string":
            self.pos += 1
            return Literal(text[1:-1].replace("''", "'"))
        if kind == "number":
            self.pos += 1
            return Literal(float(text) if "." in text else int(text))
        if kind != "name":
            self._fail("expected a value")

        self.pos += 1
        if text in KEYWORDS:
            return Literal(KEYWORDS[text])

        if self._accept("("):
            self._expect(")")
            if text not in FUNCTIONS:
                raise ConfigurationError(
                    f"unknown function {text}()",
                    expression=self.source,
                    known=", ".join(f"{f}()" for f in FUNCTIONS),
                )
            return Call(text)

        path = [text]
        while True:
            if self._accept("."):
                nxt = self._peek()
                if not nxt or nxt[0] != "name":
                    self._fail("expected a property name")
                path.append(nxt[1])
                self.pos += 1
            elif self._accept("["):
                nxt = self._peek()
                if not nxt or nxt[0] != "string":
                    self._fail("expected a quoted property name")
                path.append(nxt[1][1:-1].replace("''", "'"))
                self.pos += 1
                self._expect("]")
            else:
                break
        return Ref(tuple(path))


# ----------------------------------------------------------------------
# Evaluation
# ----------------------------------------------------------------------

_MISSING = object()


def _lookup(context: Mapping[str, Any], ref: Ref) -> Any:
    node: Any = context
    for part in ref.path:
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "==":
        return stringify(left) == stringify(right)
    if op == "!=":
        return stringify(left) != stringify(right)
    try:
        a, b = float(stringify(left)), float(stringify(right))
    except ValueError:
        a, b = stringify(left), stringify(right)
    return {
        "<": a < b,
        "<=": a <= b,
        ">": a > b,
        ">=": a >= b,
    }[op]


class Expression:
    """A parsed condition or placeholder body."""

    def __init__(self, source: str):
        self.source = source.strip()
        self._root = _Parser(self.source).parse()

    def __repr__(self) -> str:
        return f"Expression({self.source!r})"

    def _walk(self, node=None) -> Iterator[Any]:
        node = self._root if node is None else node
        yield node
        if isinstance(node, Not):
            yield from self._walk(node.operand)
        elif isinstance(node, BinOp):
            yield from self._walk(node.left)
            yield from self._walk(node.right)

    @property
    def refs(self) -> List[Ref]:
        return [n for n in self._walk() if isinstance(n, Ref)]

    def check(self, scope: Mapping[str, Any]) -> None:
        """
        Raise ConfigurationError for any reference that does not resolve to a
        leaf value in `scope` (same shape as the runtime context).
        """
        for ref in self.refs:
            value = _lookup(scope, ref)
            if value is _MISSING:
                raise ConfigurationError(
                    f"unresolved reference '{ref}'",
                    expression=self.source,
                )
            if isinstance(value, Mapping):
                raise ConfigurationError(
                    f"'{ref}' is an object, not a value",
                    expression=self.source,
                )

    def evaluate(
        self,
        context: Mapping[str, Any],
        functions: Mapping[str, Callable[[], bool]] | None = None,
    ) -> Any:
        functions = functions or {}

        def ev(node) -> Any:
            if isinstance(node, Literal):
                return node.value
            if isinstance(node, Ref):
                value = _lookup(context, node)
                if value is _MISSING:
                    raise ConfigurationError(
                        f"unresolved reference '{node}'",
                        expression=self.source,
                    )
                return value
            if isinstance(node, Call):
                if node.name not in functions:
                    raise ConfigurationError(
                        f"{node.name}() is not available here",
                        expression=self.source,
                    )
                return functions[node.name]()
            if isinstance(node, Not):
                return not truthy(ev(node.operand))
            if node.op == "&&":
                left = ev(node.left)
                return ev(node.right) if truthy(left) else left
            if node.op == "||":
                left = ev(node.left)
                return left if truthy(left) else ev(node.right)
            return _compare(node.op, ev(node.left), ev(node.right))

        return ev(self._root)

    def is_true(self, context: Mapping[str, Any], functions=None) -> bool:
        return truthy(self.evaluate(context, functions))


def parse_condition(source: str) -> Expression:
    """Conditions may be written bare or wrapped in ${{ }}."""
    text = source.strip()
    m = TEMPLATE_RE.fullmatch(text)
    if m:
        text = m.group(1)
    return Expression(text)


def template_expressions(template: Any) -> List[Expression]:
    if not isinstance(template, str):
        return []
    return [Expression(m.group(1)) for m in TEMPLATE_RE.finditer(template)]


def render(template: Any, context: Mapping[str, Any]) -> str:
    """Substitute every ${{ expr }} in `template`; non-strings are stringified."""
    if not isinstance(template, str):
        return stringify(template)
    return TEMPLATE_RE.sub(
        lambda m: stringify(Expression(m.group(1)).evaluate(context)),
        template,
    )


def check_template(template: Any, scope: Mapping[str, Any]) -> None:
    for expr in template_expressions(template):
        expr.check(scope)


def context_for(
    *,
    matrix: Mapping[str, Any],
    env: Mapping[str, Any] | None = None,
    steps: Mapping[str, Any] | None = None,
    event: Mapping[str, Any] | None = None,
) -> Dict[str, Any]:
    return {
        "matrix": dict(matrix),
        "env": dict(env or {}),
        "steps": dict(steps or {}),
        "event": dict(event or {}),
    }
