"""
Parametric dimension solving.
"""

from .expression import (
    ExpressionError,
    evaluate_expression,
    evaluate_postfix,
    extract_dependencies,
    to_postfix,
    tokenize,
)
from .solver import (
    ParametricModel,
    ParametricSolver,
    SolveResult,
    clamp_length,
    set_wall_length,
    solve,
)

__all__ = [
    "ExpressionError",
    "evaluate_expression",
    "evaluate_postfix",
    "extract_dependencies",
    "to_postfix",
    "tokenize",
    "ParametricModel",
    "ParametricSolver",
    "SolveResult",
    "clamp_length",
    "set_wall_length",
    "solve",
]
