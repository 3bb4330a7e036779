"""Printing and static typing of logic expressions (used for diagnostics)."""

from pivc import logic

# FLOAT_DIV has no surface syntax of its own; the reader picks it from operand types.
_SYMBOLS = {op: op.value for op in logic.BinOp}
_SYMBOLS[logic.BinOp.FLOAT_DIV] = "/"


def stringify(e: logic.Exp) -> str:
    """Render `e` in the formula syntax accepted by `pivc.parse`."""
    match e:
        case logic.VariableRef(var): return var.name
        case logic.IntConst(v): return str(v)
        case logic.FloatConst(v): return repr(float(v))
        case logic.BoolConst(v): return "true" if v else "false"
        case logic.PredicateCall(pred, args):
            return f"{pred.name}({', '.join(stringify(a) for a in args)})"
        case logic.Subscript(arr, idx): return f"{stringify(arr)}[{stringify(idx)}]"
        case logic.ArrayUpdate(arr, idx, val, _):
            return f"{stringify(arr)}[{stringify(idx)} := {stringify(val)}]"
        case logic.Not(arg): return f"(!{stringify(arg)})"
        case logic.Neg(arg): return f"(-{stringify(arg)})"
        case logic.Binary(op, l, r): return f"({stringify(l)} {_SYMBOLS[op]} {stringify(r)})"
        case logic.Quantified(kind, names, body):
            return f"(\\{kind.value} {', '.join(names)}. {stringify(body)})"
        case logic.Length(arg): return f"\\length({stringify(arg)})"
        case _: return str(e)


def type_of(e: logic.Exp) -> logic.Type:
    """Return the static type of `e`, assuming it is well typed."""
    match e:
        case logic.VariableRef(var): return var.type
        case logic.IntConst(_) | logic.Length(_): return logic.IntType()
        case logic.FloatConst(_): return logic.FloatType()
        case logic.BoolConst(_) | logic.PredicateCall(_, _) | logic.Not(_) | logic.Quantified(_, _, _):
            return logic.BoolType()
        case logic.Subscript(arr, _):
            t = type_of(arr)
            if not isinstance(t, logic.ArrayType):
                raise TypeError(f"subscript of non-array {stringify(arr)}")
            return t.base
        case logic.ArrayUpdate(arr, _, _, _): return type_of(arr)
        case logic.Neg(arg): return type_of(arg)
        case logic.Binary(op, l, r):
            if op == logic.BinOp.FLOAT_DIV:
                return logic.FloatType()
            if op == logic.BinOp.MOD:
                return logic.IntType()
            if op in logic.ARITHMETIC_OPS:
                if logic.FloatType() in (type_of(l), type_of(r)):
                    return logic.FloatType()
                return logic.IntType()
            return logic.BoolType()
        case _:
            raise TypeError(f"type_of got {type(e)}: {e}")
