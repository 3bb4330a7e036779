"""Encode verification conditions into Z3 and discharge them.

This module provides:
- the sort model mapping `logic` types to Z3 sorts,
- a registry of predicate definitions, resolved at call sites by substitution,
- an encoding from `logic` expressions into Z3 terms, and
- `Z3Solver`, which decides validity and extracts counterexample models.

Every Z3 object lives in the context owned by one `Z3Solver`. Z3 contexts are
not thread safe: threads that check VCs concurrently need a solver each.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Iterator, Optional

import z3

from pivc import logic
from pivc.errors import (
    ArityMismatchError,
    DuplicatePredicateError,
    MalformedLengthError,
    SortMismatchError,
    UnknownElementTypeError,
    UnregisteredPredicateError,
    UnsupportedParameterTypeError,
    VCError,
)
from pivc.logic_util import stringify

log = logging.getLogger(__name__)

_ATOMIC_TYPES = (logic.IntType, logic.FloatType, logic.BoolType)


def sort_of(t: logic.Type, ctx: z3.Context) -> z3.SortRef:
    """Return the Z3 sort of values of type `t`."""
    match t:
        case logic.IntType():
            return z3.IntSort(ctx)
        case logic.FloatType():
            return z3.RealSort(ctx)
        case logic.BoolType():
            return z3.BoolSort(ctx)
        case logic.ArrayType(base):
            if not isinstance(base, _ATOMIC_TYPES):
                raise UnknownElementTypeError(base)
            return z3.ArraySort(z3.IntSort(ctx), sort_of(base, ctx))
        case _:
            raise TypeError(f"sort_of got {type(t)}: {t}")


def declare(var: logic.Variable, ctx: z3.Context) -> z3.ExprRef:
    """Return the Z3 constant standing for `var`."""
    return z3.Const(var.name, sort_of(var.type, ctx))


def _fits(term: z3.ExprRef, sort: z3.SortRef) -> bool:
    """Whether `term` can stand where a value of `sort` is expected (Int widens to Real)."""
    return term.sort() == sort or (sort.kind() == z3.Z3_REAL_SORT and z3.is_int(term))


def _coerce(term: z3.ExprRef, sort: z3.SortRef) -> z3.ExprRef:
    if term.sort() != sort and sort.kind() == z3.Z3_REAL_SORT:
        return z3.ToReal(term)
    return term


@dataclass(frozen=True)
class CounterModel(Mapping):
    """Values, rendered as text, that the solver assigned to the constants of a failed VC.

    Only constants the solver chose to report appear. `unknown_reason` is set
    when the solver could not decide the query; the assignments are then
    whatever partial model it had, possibly none.
    """
    assignments: Mapping[str, str]
    unknown_reason: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "assignments", MappingProxyType(dict(self.assignments)))

    @property
    def is_refutation(self) -> bool:
        return self.unknown_reason is None

    def __getitem__(self, name: str) -> str:
        return self.assignments[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.assignments)

    def __len__(self) -> int:
        return len(self.assignments)

    def __hash__(self) -> int:
        return hash((frozenset(self.assignments.items()), self.unknown_reason))


class PredicateRegistry:
    """Encoded predicate bodies and their formal parameter constants, by predicate name."""

    def __init__(self, ctx: z3.Context):
        self.ctx = ctx
        self._entries: dict[str, tuple[z3.BoolRef, tuple[z3.ExprRef, ...]]] = {}

    def register(self, predicate: logic.Predicate, encoder: "ExpressionEncoder") -> None:
        if predicate.name in self._entries:
            raise DuplicatePredicateError(predicate.name)
        formals = []
        for param in predicate.parameters:
            if not isinstance(param.type, _ATOMIC_TYPES):
                raise UnsupportedParameterTypeError(predicate.name, param)
            formals.append(declare(param, self.ctx))
        # The predicate is not visible yet, so a recursive body fails to encode.
        body = encoder.encode(predicate.body)
        if not z3.is_bool(body):
            raise SortMismatchError(predicate.body, "Bool", body.sort())
        self._entries[predicate.name] = (body, tuple(formals))
        log.debug("defined predicate %s(%s) := %s", predicate.name,
                  ", ".join(p.name for p in predicate.parameters), body)

    def lookup(self, name: str) -> tuple[z3.BoolRef, tuple[z3.ExprRef, ...]]:
        try:
            return self._entries[name]
        except KeyError:
            raise UnregisteredPredicateError(name) from None

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class ExpressionEncoder:
    """Structural translation of `logic` expressions into Z3 terms.

    Operand sorts are checked as they are encoded. A mismatch means the VC
    generator built an ill-typed expression and raises `SortMismatchError`
    naming the offending node.
    """

    def __init__(self, ctx: z3.Context, predicates: PredicateRegistry):
        self.ctx = ctx
        self.predicates = predicates

    def encode(self, e: logic.Exp) -> z3.ExprRef:
        """Encode a `logic` expression as a Z3 expression."""
        ctx = self.ctx
        match e:
            case logic.VariableRef(var):
                return declare(var, ctx)
            case logic.IntConst(val):
                return z3.IntVal(val, ctx)
            case logic.FloatConst(val):
                if not math.isfinite(val):
                    raise VCError(f"{stringify(e)}: real constants must be finite")
                # Exact decimal text, so 0.1 is 1/10 rather than its binary approximation.
                return z3.RealVal(format(Decimal(repr(float(val))), "f"), ctx)
            case logic.BoolConst(val):
                return z3.BoolVal(val, ctx)

            case logic.PredicateCall(pred, args):
                body, formals = self.predicates.lookup(pred.name)
                if len(args) != len(formals):
                    raise ArityMismatchError(e, len(formals), len(args))
                pairs = []
                for formal, arg in zip(formals, args):
                    actual = self.encode(arg)
                    if not _fits(actual, formal.sort()):
                        raise SortMismatchError(arg, str(formal.sort()), actual.sort())
                    pairs.append((formal, _coerce(actual, formal.sort())))
                return z3.substitute(body, *pairs) if pairs else body

            case logic.Subscript(arr, idx):
                a = self._expect(arr, z3.is_array, "Array")
                i = self._expect(idx, z3.is_int, "Int")
                return z3.Select(a, i)

            case logic.ArrayUpdate(arr, idx, val, _):
                a = self._expect(arr, z3.is_array, "Array")
                i = self._expect(idx, z3.is_int, "Int")
                v = self.encode(val)
                elem = a.sort().range()
                if not _fits(v, elem):
                    raise SortMismatchError(val, str(elem), v.sort())
                return z3.Store(a, i, _coerce(v, elem))

            case logic.Not(arg):
                return z3.Not(self._expect(arg, z3.is_bool, "Bool"))
            case logic.Neg(arg):
                return -self._expect(arg, z3.is_arith, "arithmetic")

            case logic.Binary(op, left, right):
                return self._binary(e, op, left, right)

            case logic.Quantified(kind, names, body):
                bound = [z3.Int(name, ctx) for name in names]
                b = self._expect(body, z3.is_bool, "Bool")
                if not bound:
                    return b
                if kind == logic.Quantifier.FORALL:
                    return z3.ForAll(bound, b)
                return z3.Exists(bound, b)

            case logic.Length(_):
                length = self._length_variable(e)
                if not isinstance(length.type, logic.IntType):
                    raise SortMismatchError(e, "Int", sort_of(length.type, ctx))
                return declare(length, ctx)

            case _:
                raise TypeError(f"encode got {type(e)}: {e}")

    def _expect(self, e: logic.Exp, check, expected: str) -> z3.ExprRef:
        """Encode `e` and require `check` to hold of the result."""
        t = self.encode(e)
        if not check(t):
            raise SortMismatchError(e, expected, t.sort())
        return t

    def _binary(self, e: logic.Binary, op: logic.BinOp, left: logic.Exp, right: logic.Exp) -> z3.ExprRef:
        if op in logic.BOOLEAN_OPS:
            l = self._expect(left, z3.is_bool, "Bool")
            r = self._expect(right, z3.is_bool, "Bool")
            match op:
                case logic.BinOp.AND:
                    return z3.And(l, r)
                case logic.BinOp.OR:
                    return z3.Or(l, r)
                case logic.BinOp.IMPLIES:
                    return z3.Implies(l, r)
                case logic.BinOp.IFF:
                    return l == r

        if op in logic.EQUALITY_OPS:
            l = self.encode(left)
            r = self.encode(right)
            # Int and Real compare after widening; any other sorts must agree exactly.
            if not (z3.is_arith(l) and z3.is_arith(r)) and l.sort() != r.sort():
                raise SortMismatchError(e, str(l.sort()), r.sort())
            eq = l == r
            return eq if op == logic.BinOp.EQ else z3.Not(eq)

        if op == logic.BinOp.MOD:
            l = self._expect(left, z3.is_int, "Int")
            r = self._expect(right, z3.is_int, "Int")
            return l % r

        l = self._expect(left, z3.is_arith, "arithmetic")
        r = self._expect(right, z3.is_arith, "arithmetic")
        match op:
            case logic.BinOp.MUL:
                return l * r
            case logic.BinOp.DIV | logic.BinOp.FLOAT_DIV:
                return l / r
            case logic.BinOp.ADD:
                return l + r
            case logic.BinOp.SUB:
                return l - r
            case logic.BinOp.LT:
                return l < r
            case logic.BinOp.LE:
                return l <= r
            case logic.BinOp.GT:
                return l > r
            case logic.BinOp.GE:
                return l >= r
        raise ValueError(f"Unknown binary operator {op}")

    def _length_variable(self, e: logic.Length) -> logic.Variable:
        """Return the integer variable tracking the length of the array in `\\length(...)`."""
        match e.arg:
            case logic.VariableRef(logic.ArrayVariable() as var):
                return var.length
            case logic.ArrayUpdate(_, _, _, length):
                return length
        raise MalformedLengthError(e)


@dataclass(frozen=True)
class SolverOptions:
    """Session-wide solver settings.

    `tactic` builds query solvers from a named Z3 tactic instead of the default
    solver; `params` are passed to `Solver.set` (e.g. `timeout` in ms).
    """
    simplify: bool = True
    tactic: Optional[str] = None
    params: Mapping[str, object] = field(default_factory=dict)


class Z3Solver:
    """A verification session: one Z3 context, its predicates, and validity queries."""

    def __init__(self, options: Optional[SolverOptions] = None):
        self.options = options or SolverOptions()
        self.ctx = z3.Context(model=True)
        self.predicates = PredicateRegistry(self.ctx)
        self.encoder = ExpressionEncoder(self.ctx, self.predicates)

    def define_predicate(self, predicate: logic.Predicate) -> None:
        """Make `predicate` callable from expressions encoded afterwards."""
        self.predicates.register(predicate, self.encoder)

    def encode(self, e: logic.Exp) -> z3.ExprRef:
        return self.encoder.encode(e)

    def get_solver(self) -> z3.Solver:
        """Create a fresh Z3 solver in this session's context."""
        if self.options.tactic is not None:
            s = z3.Tactic(self.options.tactic, self.ctx).solver()
        else:
            s = z3.Solver(ctx=self.ctx)
        if self.options.params:
            s.set(**self.options.params)
        return s

    def check_valid(self, e: logic.Exp) -> Optional[CounterModel]:
        """Return `None` if `e` is valid, and a counterexample otherwise.

        Validity is unsatisfiability of the negation. When the solver cannot
        decide, `e` counts as not proven and the returned model carries the
        solver's reason in `unknown_reason`.
        """
        goal = self.encoder.encode(e)
        if not z3.is_bool(goal):
            raise SortMismatchError(e, "Bool", goal.sort())
        if self.options.simplify:
            goal = z3.simplify(goal)

        s = self.get_solver()
        s.add(z3.Not(goal))
        res = s.check()
        log.debug("check_valid %s: negation is %s", goal, res)
        if res == z3.unsat:
            return None

        reason = None
        if res == z3.unknown:
            reason = s.reason_unknown()
            log.warning("solver could not decide %s (%s); reporting it as not valid", goal, reason)
            try:
                model = s.model()
            except z3.Z3Exception:
                return CounterModel({}, reason)
        else:
            model = s.model()

        assignments = {d.name(): str(model[d]) for d in model.decls() if d.arity() == 0}
        return CounterModel(assignments, reason)
