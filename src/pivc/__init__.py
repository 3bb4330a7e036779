"""Discharge verification conditions with Z3."""

from pivc.errors import VCError
from pivc.parse import parse_formula
from pivc.solver import CounterModel, SolverOptions, Z3Solver

__all__ = ["CounterModel", "SolverOptions", "VCError", "Z3Solver", "parse_formula"]
