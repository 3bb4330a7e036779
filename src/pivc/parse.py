"""Read formulas written in the assertion syntax into `logic` expressions.

    P(x) && x > 0 => a[i := x][i] == x
    \\forall k. 0 <= k && k < \\length(a) => a[k] >= 0

Parsing is two-staged: the pyparsing grammar yields untyped syntax nodes,
which are then resolved against the declared variables and predicates (and
the integer variables bound by quantifiers).
"""

import functools
from dataclasses import dataclass
from typing import Iterable

import pyparsing
from pyparsing import (
    DelimitedList, Forward, Group, Keyword, Literal, OpAssoc, Optional, ParserElement, Regex, Suppress, Word,
    ZeroOrMore, alphanums, alphas, infix_notation, nums,
)

from pivc import logic
from pivc.logic_util import type_of

ParserElement.enable_packrat()


@dataclass(frozen=True)
class _Syntax:
    kind: str
    parts: tuple


def _node(kind: str):
    return lambda t: _Syntax(kind, tuple(t))


def _make_binop(t):
    tokens = t[0]
    res = tokens[0]
    for i in range(1, len(tokens), 2):
        res = _Syntax("bin", (tokens[i], res, tokens[i + 1]))
    return res


def _make_unary(t):
    res = t[-1]
    for op in reversed(t[:-1]):
        res = _Syntax("not" if op == "!" else "neg", (res,))
    return res


def _reduce_postfix(t):
    res = t[0]
    for suffix in t[1:]:
        if len(suffix) == 1:
            res = _Syntax("sub", (res, suffix[0]))
        else:
            res = _Syntax("upd", (res, suffix[0], suffix[1]))
    return res


@functools.lru_cache(maxsize=None)
def _grammar() -> pyparsing.ParserElement:
    LPAREN, RPAREN, LBRACKET, RBRACKET = map(Suppress, "()[]")

    TRUE = Keyword("true")
    FALSE = Keyword("false")
    LENGTH = Literal("\\length")
    FORALL = Literal("\\forall")
    EXISTS = Literal("\\exists")

    Identifier = (~(TRUE | FALSE) + Word(alphas, alphanums + "_")).set_parse_action(lambda t: t[0])

    Exp = Forward()

    FloatLit = Regex(r"\d+\.\d+").set_parse_action(lambda t: _Syntax("float", (float(t[0]),)))
    IntLit = Word(nums).set_parse_action(lambda t: _Syntax("int", (int(t[0]),)))
    BoolLit = (TRUE | FALSE).set_parse_action(lambda t: _Syntax("bool", (t[0] == "true",)))
    LengthAtom = (LENGTH + LPAREN + Exp + RPAREN).set_parse_action(lambda t: _Syntax("length", (t[1],)))
    Call = (Identifier + LPAREN + Group(Optional(DelimitedList(Exp))) + RPAREN).set_parse_action(
        lambda t: _Syntax("call", (t[0], tuple(t[1])))
    )
    Name = Identifier.copy().set_parse_action(_node("name"))

    BaseAtom = FloatLit | IntLit | BoolLit | LengthAtom | Call | Name | (LPAREN + Exp + RPAREN)

    # a[i] reads, a[i := v] is the functional update.
    Update = Group(LBRACKET + Exp + Suppress(":=") + Exp + RBRACKET)
    Index = Group(LBRACKET + Exp + RBRACKET)
    AtomWithArray = (BaseAtom + ZeroOrMore(Update | Index)).set_parse_action(_reduce_postfix)

    # Quantifiers bind integers and extend as far right as possible.
    Quantifier = ((FORALL | EXISTS) + Group(DelimitedList(Identifier)) + Suppress(".") + Exp).set_parse_action(
        lambda t: _Syntax(t[0][1:], (tuple(t[1]), t[2]))
    )

    Unary = (ZeroOrMore(Literal("!") | Literal("-")) + (Quantifier | AtomWithArray)).set_parse_action(_make_unary)

    Exp <<= infix_notation(Unary, [
        (Literal("*") | Literal("/") | Literal("%"), 2, OpAssoc.LEFT, _make_binop),
        (Literal("+") | Literal("-"), 2, OpAssoc.LEFT, _make_binop),
        # Neither `<=` nor `<` may take the start of `<=>`.
        (Regex(r"<=(?!>)|>=|<(?!=>)|>"), 2, OpAssoc.LEFT, _make_binop),
        (Literal("==") | Literal("!="), 2, OpAssoc.LEFT, _make_binop),
        (Literal("&&"), 2, OpAssoc.LEFT, _make_binop),
        (Literal("||"), 2, OpAssoc.LEFT, _make_binop),
        (Literal("=>"), 2, OpAssoc.RIGHT, _make_binop),
        (Literal("<=>"), 2, OpAssoc.LEFT, _make_binop),
    ])
    return Exp


class _Resolver:
    def __init__(self, src: str, predicates: dict[str, logic.Predicate]):
        self.src = src
        self.predicates = predicates

    def fatal(self, msg: str):
        # Syntax nodes carry no source locations; use loc=0 and a clear message.
        raise pyparsing.ParseFatalException(self.src, 0, msg)

    def resolve(self, n: _Syntax, scope: dict[str, logic.Variable]) -> logic.Exp:
        match n.kind, n.parts:
            case "int", (v,):
                return logic.IntConst(v)
            case "float", (v,):
                return logic.FloatConst(v)
            case "bool", (v,):
                return logic.BoolConst(v)
            case "name", (name,):
                if name not in scope:
                    self.fatal(f"use of undeclared variable `{name}`")
                return logic.VariableRef(scope[name])
            case "call", (name, args):
                if name not in self.predicates:
                    self.fatal(f"call of undeclared predicate `{name}`")
                return logic.PredicateCall(self.predicates[name], tuple(self.resolve(a, scope) for a in args))
            case "sub", (arr, idx):
                return logic.Subscript(self.resolve(arr, scope), self.resolve(idx, scope))
            case "upd", (arr, idx, val):
                a = self.resolve(arr, scope)
                return logic.ArrayUpdate(a, self.resolve(idx, scope), self.resolve(val, scope), self.length_of(a))
            case "length", (arg,):
                return logic.Length(self.resolve(arg, scope))
            case "not", (arg,):
                return logic.Not(self.resolve(arg, scope))
            case "neg", (arg,):
                return logic.Neg(self.resolve(arg, scope))
            case "bin", (sym, l, r):
                left, right = self.resolve(l, scope), self.resolve(r, scope)
                op = logic.BinOp(sym)
                if op == logic.BinOp.DIV and logic.FloatType() in (self.type_of(left), self.type_of(right)):
                    op = logic.BinOp.FLOAT_DIV
                return logic.Binary(op, left, right)
            case ("forall" | "exists") as kind, (names, body):
                inner = dict(scope)
                for name in names:
                    inner[name] = logic.Variable(name, logic.IntType())
                return logic.Quantified(logic.Quantifier(kind), names, self.resolve(body, inner))
        raise AssertionError(f"unexpected syntax node {n}")

    def type_of(self, e: logic.Exp) -> logic.Type:
        try:
            return type_of(e)
        except TypeError as err:
            self.fatal(str(err))

    def length_of(self, arr: logic.Exp) -> logic.Variable:
        """The length variable of an update of `arr`: the length of `arr` itself."""
        match arr:
            case logic.VariableRef(logic.ArrayVariable() as var):
                return var.length
            case logic.ArrayUpdate(_, _, _, length):
                return length
        self.fatal("array update expects an array variable or another array update")


def parse_formula(
    text: str,
    variables: Iterable[logic.Variable] = (),
    predicates: Iterable[logic.Predicate] = (),
) -> logic.Exp:
    """Parse `text` into an expression over `variables`, calling `predicates` by name."""
    syntax = _grammar().parse_string(text, parse_all=True)[0]
    resolver = _Resolver(text, {p.name: p for p in predicates})
    return resolver.resolve(syntax, {v.name: v for v in variables})
