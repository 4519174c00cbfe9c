from __future__ import annotations

import re
from functools import lru_cache
from typing import List, NamedTuple, Optional

from bpavalidator.expr.ast import BoolOp, Call, Comparison, Literal, Member, Name, Node, Not, Unsupported

COMPARISON_OPS = ("==", "!=", "<>", ">=", "<=", "=", ">", "<")

_WS_RE = re.compile(r"\s+")
_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?")

# tokens after which a '-' starts a negative number rather than a subtraction
_VALUE_START = {None, "op", "and", "or", "not", "(", ","}

# tokens that may follow a complete operand
_OPERAND_END = ("and", "or", ")", ",", "eof")


class ExpressionSyntaxError(ValueError):
    """Raised for text the rule expression grammar does not cover."""


class Token(NamedTuple):
    kind: str  # ident | string | number | op | and | or | not | ( | ) | . | , | error | eof
    value: object
    pos: int


def normalize_expression(text: str) -> str:
    """
    Collapse whitespace runs to one space and rewrite `&&` / `||` as `and` / `or`.

    String literals are copied through unchanged.
    """
    out: List[str] = []

    def space() -> None:
        if out and out[-1] != " ":
            out.append(" ")

    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch in "\"'":
            try:
                j = _string_end(text, i)
            except ExpressionSyntaxError:
                # unterminated: the tokenizer reports it, keep the tail as is
                out.append(text[i:])
                break
            out.append(text[i:j])
            i = j
        elif ch.isspace():
            space()
            i = _WS_RE.match(text, i).end()
        elif text.startswith("&&", i) or text.startswith("||", i):
            space()
            out.append("and" if ch == "&" else "or")
            out.append(" ")
            i += 2
        else:
            out.append(ch)
            i += 1
    return "".join(out).strip()


def _string_end(text: str, start: int) -> int:
    quote = text[start]
    i = start + 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == quote:
            return i + 1
        i += 1
    raise ExpressionSyntaxError(f"unterminated string at {start}")


def _unescape(body: str) -> str:
    # only quotes and backslashes are escapes; regex escapes like \s pass through
    out: List[str] = []
    i = 0
    while i < len(body):
        if body[i] == "\\" and i + 1 < len(body) and body[i + 1] in "\"'\\":
            out.append(body[i + 1])
            i += 2
        else:
            out.append(body[i])
            i += 1
    return "".join(out)


def tokenize(text: str) -> List[Token]:
    """
    Split normalized text into tokens. Characters outside the grammar, and an
    unterminated string, become `error` tokens for the parser to skip over.
    """
    tokens: List[Token] = []
    i, n = 0, len(text)

    def prev_kind() -> Optional[str]:
        return tokens[-1].kind if tokens else None

    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch in "\"'":
            try:
                j = _string_end(text, i)
            except ExpressionSyntaxError:
                tokens.append(Token("error", text[i:], i))
                break
            tokens.append(Token("string", _unescape(text[i + 1:j - 1]), i))
            i = j
            continue
        if ch.isdigit() or (ch == "-" and prev_kind() in _VALUE_START and i + 1 < n and text[i + 1].isdigit()):
            m = _NUMBER_RE.match(text, i)
            raw = m.group(0)
            tokens.append(Token("number", float(raw) if "." in raw else int(raw), i))
            i = m.end()
            continue
        if ch.isalpha() or ch == "_":
            m = _IDENT_RE.match(text, i)
            word = m.group(0)
            lowered = word.lower()
            if lowered in ("and", "or", "not"):
                tokens.append(Token(lowered, word, i))
            else:
                tokens.append(Token("ident", word, i))
            i = m.end()
            continue
        if text.startswith("&&", i):
            tokens.append(Token("and", "&&", i))
            i += 2
            continue
        if text.startswith("||", i):
            tokens.append(Token("or", "||", i))
            i += 2
            continue
        op = next((o for o in COMPARISON_OPS if text.startswith(o, i)), None)
        if op:
            tokens.append(Token("op", op, i))
            i += len(op)
            continue
        if ch == "!":
            tokens.append(Token("not", "!", i))
            i += 1
            continue
        if ch in "().,":
            tokens.append(Token(ch, ch, i))
            i += 1
            continue
        tokens.append(Token("error", ch, i))
        i += 1

    tokens.append(Token("eof", None, n))
    return tokens


class _Parser:
    """
    Recursive descent, lowest precedence first:
        or  ->  and  ->  not / !  ->  comparison  ->  postfix (. member / call)  ->  primary

    An operand that does not parse is skipped up to the next `and` / `or` /
    `)` / `,` at its own parenthesis depth and replaced by an `Unsupported`
    node, so the boolean structure around it still holds.
    """

    def __init__(self, tokens: List[Token], text: str = ""):
        self.tokens = tokens
        self.text = text
        self.i = 0

    @property
    def tok(self) -> Token:
        return self.tokens[self.i]

    def _take(self, kind: Optional[str] = None) -> Token:
        t = self.tok
        if kind and t.kind != kind:
            raise ExpressionSyntaxError(f"expected {kind} at {t.pos}, got {t.kind}")
        self.i += 1
        return t

    def parse(self) -> Node:
        node = self._or()
        if self.tok.kind != "eof":
            raise ExpressionSyntaxError(f"unexpected {self.tok.value!r} at {self.tok.pos}")
        return node

    def _or(self) -> Node:
        parts = [self._and()]
        while self.tok.kind == "or":
            self._take()
            parts.append(self._and())
        return parts[0] if len(parts) == 1 else BoolOp("or", tuple(parts))

    def _and(self) -> Node:
        parts = [self._unary()]
        while self.tok.kind == "and":
            self._take()
            parts.append(self._unary())
        return parts[0] if len(parts) == 1 else BoolOp("and", tuple(parts))

    def _unary(self) -> Node:
        if self.tok.kind == "not":
            self._take()
            return Not(self._unary())
        return self._operand()

    def _operand(self) -> Node:
        start = self.i
        try:
            node = self._comparison()
            if self.tok.kind in _OPERAND_END:
                return node
        except ExpressionSyntaxError:
            pass
        self.i = start
        self._skip_operand()
        begin = self.tokens[start].pos
        return Unsupported(self.text[begin:self.tok.pos].strip())

    def _skip_operand(self) -> None:
        depth = 0
        while self.tok.kind != "eof":
            kind = self.tok.kind
            if depth == 0 and kind in ("and", "or", ")", ","):
                return
            if kind == "(":
                depth += 1
            elif kind == ")":
                depth -= 1
            self.i += 1

    def _comparison(self) -> Node:
        left = self._postfix()
        if self.tok.kind == "op":
            op = self._take().value
            right = self._postfix()
            if self.tok.kind == "op":
                raise ExpressionSyntaxError(f"chained comparison at {self.tok.pos}")
            return Comparison(str(op), left, right)
        return left

    def _postfix(self) -> Node:
        node = self._primary()
        while self.tok.kind == ".":
            self._take()
            name = str(self._take("ident").value)
            if self.tok.kind == "(":
                node = Call(node, name, self._args())
            elif isinstance(node, Name):
                node = Name(node.parts + (name,))
            else:
                node = Member(node, name)
        return node

    def _args(self) -> tuple:
        self._take("(")
        args: List[Node] = []
        if self.tok.kind != ")":
            args.append(self._or())
            while self.tok.kind == ",":
                self._take()
                args.append(self._or())
        self._take(")")
        return tuple(args)

    def _primary(self) -> Node:
        t = self.tok
        if t.kind in ("string", "number"):
            self._take()
            return Literal(t.value)
        if t.kind == "(":
            self._take()
            node = self._or()
            self._take(")")
            return node
        if t.kind == "ident":
            self._take()
            word = str(t.value)
            lowered = word.lower()
            if lowered in ("true", "false"):
                return Literal(lowered == "true")
            if lowered == "null":
                return Literal(None)
            if self.tok.kind == "(":
                return Call(None, word, self._args())
            if lowered == "it" and self.tok.kind == ".":
                # BPA lambda notation: `it.Name` is just `Name`
                self._take()
                return Name((str(self._take("ident").value),))
            return Name((word,))
        raise ExpressionSyntaxError(f"unexpected {t.kind} at {t.pos}")


@lru_cache(maxsize=2048)
def parse_expression(text: str) -> Node:
    text = normalize_expression(text)
    return _Parser(tokenize(text), text).parse()
