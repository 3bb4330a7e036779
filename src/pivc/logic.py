"""Typed logical expressions handed to the solver by the VC generator."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


@dataclass(frozen=True)
class Type:
    pass

@dataclass(frozen=True)
class IntType(Type):
    def __repr__(self):
        return "int"

@dataclass(frozen=True)
class FloatType(Type):
    def __repr__(self):
        return "float"

@dataclass(frozen=True)
class BoolType(Type):
    def __repr__(self):
        return "bool"

@dataclass(frozen=True)
class ArrayType(Type):
    base: Type
    def __repr__(self):
        return f"{self.base}[]"


@dataclass(frozen=True)
class Variable:
    name: str
    type: Type

@dataclass(frozen=True)
class ArrayVariable(Variable):
    """An array variable together with the integer variable tracking its length."""
    length: Variable

    @staticmethod
    def of(name: str, base: Type) -> "ArrayVariable":
        return ArrayVariable(name, ArrayType(base), Variable(f"{name}.length", IntType()))


@dataclass(frozen=True)
class Exp:
    pass

@dataclass(frozen=True)
class VariableRef(Exp):
    variable: Variable

@dataclass(frozen=True)
class IntConst(Exp):
    value: int

@dataclass(frozen=True)
class FloatConst(Exp):
    value: float

@dataclass(frozen=True)
class BoolConst(Exp):
    value: bool

@dataclass(frozen=True)
class PredicateCall(Exp):
    predicate: "Predicate"
    args: Tuple[Exp, ...]

@dataclass(frozen=True)
class Subscript(Exp):
    array: Exp
    index: Exp

@dataclass(frozen=True)
class ArrayUpdate(Exp):
    """Functional update: `array` with `index` mapped to `value`.

    `length` is the integer variable holding the length of the result, which
    is the length of `array`.
    """
    array: Exp
    index: Exp
    value: Exp
    length: Variable

@dataclass(frozen=True)
class Not(Exp):
    arg: Exp

@dataclass(frozen=True)
class Neg(Exp):
    arg: Exp


class BinOp(Enum):
    MUL = "*"
    DIV = "/"
    FLOAT_DIV = "/."
    MOD = "%"
    ADD = "+"
    SUB = "-"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    EQ = "=="
    NE = "!="
    AND = "&&"
    OR = "||"
    IMPLIES = "=>"
    IFF = "<=>"

ARITHMETIC_OPS = frozenset({BinOp.MUL, BinOp.DIV, BinOp.FLOAT_DIV, BinOp.MOD, BinOp.ADD, BinOp.SUB})
COMPARISON_OPS = frozenset({BinOp.LT, BinOp.LE, BinOp.GT, BinOp.GE})
EQUALITY_OPS = frozenset({BinOp.EQ, BinOp.NE})
BOOLEAN_OPS = frozenset({BinOp.AND, BinOp.OR, BinOp.IMPLIES, BinOp.IFF})

@dataclass(frozen=True)
class Binary(Exp):
    op: BinOp
    left: Exp
    right: Exp


class Quantifier(Enum):
    FORALL = "forall"
    EXISTS = "exists"

@dataclass(frozen=True)
class Quantified(Exp):
    """Quantification over integer variables `names` in `body`."""
    kind: Quantifier
    names: Tuple[str, ...]
    body: Exp

@dataclass(frozen=True)
class Length(Exp):
    arg: Exp


@dataclass(frozen=True)
class Predicate:
    name: str
    parameters: Tuple[Variable, ...]
    body: Exp
