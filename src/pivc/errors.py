"""Fatal defects raised while encoding verification conditions.

None of these describe a property of the program being verified: they mean
the VC generator handed over an ill-formed expression or predicate. Callers
should log and abort; an invalid VC is reported as a `CounterModel` instead.
"""

from pivc import logic
from pivc.logic_util import stringify


class VCError(Exception):
    """Base class of all encoding defects."""


class SortMismatchError(VCError):
    def __init__(self, node: logic.Exp, expected: str, actual: object):
        self.node = node
        self.expected = expected
        self.actual = str(actual)
        super().__init__(f"{stringify(node)}: expected {expected} sort, got {self.actual}")


class UnregisteredPredicateError(VCError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"predicate `{name}` is called before being defined")


class DuplicatePredicateError(VCError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"predicate `{name}` is already defined")


class UnsupportedParameterTypeError(VCError):
    def __init__(self, predicate: str, parameter: logic.Variable):
        self.predicate = predicate
        self.parameter = parameter
        super().__init__(
            f"the type of parameter `{parameter.name}` of `{predicate}` is "
            f"{parameter.type!r}, neither int, float nor bool"
        )


class ArityMismatchError(VCError):
    def __init__(self, node: logic.Exp, expected: int, actual: int):
        self.node = node
        super().__init__(f"{stringify(node)}: expected {expected} arguments, got {actual}")


class MalformedLengthError(VCError):
    def __init__(self, node: logic.Exp):
        self.node = node
        super().__init__(
            f"{stringify(node)}: \\length expects an array variable or an array update"
        )


class UnknownElementTypeError(VCError):
    def __init__(self, element_type: logic.Type):
        self.element_type = element_type
        super().__init__(f"array element type {element_type!r} is neither int, float nor bool")
