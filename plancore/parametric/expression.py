"""
Dimension Expression Evaluator
Arithmetic over numeric literals and dotted identifiers: ``+ - * /``,
unary minus and parentheses.

Expressions are tokenized, converted to postfix with the shunting-yard
algorithm and then evaluated on a stack.
"""

import math
import re
from typing import Callable, List, Mapping, Optional, Union

Token = Union[float, str]

OPERATORS = "+-*/"
NEGATE = "~"
PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2, NEGATE: 3}
SYMBOLS = set(OPERATORS) | {"(", ")", NEGATE}

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")
WALL_LENGTH_PATTERN = re.compile(r"^wall\.(.+)\.length$")


class ExpressionError(ValueError):
    """Malformed expression or unresolvable identifier."""


def is_identifier(token: Token) -> bool:
    return isinstance(token, str) and token not in SYMBOLS


def tokenize(expression: str) -> List[Token]:
    """
    Split an expression into numbers, identifiers, operators and parentheses.

    A minus at the start or after ``(`` or another operator is unary and is
    emitted as ``~``, which binds tighter than any binary operator.
    """
    tokens: List[Token] = []
    index = 0
    length = len(expression)

    while index < length:
        char = expression[index]
        if char.isspace():
            index += 1
            continue

        if char.isdigit() or char == ".":
            end = index + 1
            while end < length and (expression[end].isdigit() or expression[end] == "."):
                end += 1
            text = expression[index:end]
            try:
                tokens.append(float(text))
            except ValueError:
                raise ExpressionError(f"Invalid number '{text}'")
            index = end
            continue

        if char.isalpha() or char == "_":
            match = IDENTIFIER_PATTERN.match(expression, index)
            tokens.append(match.group(0))
            index = match.end()
            continue

        if char in OPERATORS or char in "()":
            previous = tokens[-1] if tokens else None
            if char == "-" and (previous is None or previous == "(" or previous in PRECEDENCE):
                tokens.append(NEGATE)
            else:
                tokens.append(char)
            index += 1
            continue

        raise ExpressionError(f"Unexpected token '{char}'")

    return tokens


def to_postfix(tokens: List[Token]) -> List[Token]:
    """Shunting-yard conversion to reverse Polish notation."""
    output: List[Token] = []
    stack: List[str] = []

    for token in tokens:
        if isinstance(token, float) or is_identifier(token):
            output.append(token)
        elif token == "(":
            stack.append(token)
        elif token == ")":
            while stack and stack[-1] != "(":
                output.append(stack.pop())
            if not stack:
                raise ExpressionError("Mismatched parentheses")
            stack.pop()
        elif token == NEGATE:
            stack.append(token)
        else:
            while stack and stack[-1] != "(" and PRECEDENCE[stack[-1]] >= PRECEDENCE[token]:
                output.append(stack.pop())
            stack.append(token)

    while stack:
        op = stack.pop()
        if op == "(":
            raise ExpressionError("Mismatched parentheses")
        output.append(op)

    return output


def evaluate_postfix(postfix: List[Token], resolve: Callable[[str], Optional[float]]) -> float:
    """
    Evaluate an RPN token stream.

    Args:
        postfix: Output of ``to_postfix``
        resolve: Identifier -> value; None (or a non-finite value) means unknown

    Raises:
        ExpressionError: unknown identifier, malformed stream, division by zero
    """
    stack: List[float] = []

    for token in postfix:
        if isinstance(token, float):
            stack.append(token)
            continue
        if is_identifier(token):
            value = resolve(token)
            if value is None or not math.isfinite(value):
                raise ExpressionError(f"Unknown identifier '{token}'")
            stack.append(float(value))
            continue

        if token == NEGATE:
            if not stack:
                raise ExpressionError("Malformed expression")
            stack.append(-stack.pop())
            continue

        if len(stack) < 2:
            raise ExpressionError("Malformed expression")
        b = stack.pop()
        a = stack.pop()
        if token == "+":
            stack.append(a + b)
        elif token == "-":
            stack.append(a - b)
        elif token == "*":
            stack.append(a * b)
        elif token == "/":
            if b == 0:
                raise ExpressionError("Division by zero")
            stack.append(a / b)
        else:
            raise ExpressionError(f"Unsupported operator '{token}'")

    if len(stack) != 1:
        raise ExpressionError("Malformed expression")

    result = stack[0]
    if not math.isfinite(result):
        raise ExpressionError("Expression result is not finite")
    return result


def evaluate_expression(
    expression: str,
    values: Mapping[str, float],
    wall_lengths: Optional[Mapping[str, float]] = None
) -> float:
    """
    Evaluate an expression against a parameter table.

    ``wall.<id>.length`` identifiers resolve through ``wall_lengths`` when
    they are not parameters themselves.

    Example:
        >>> evaluate_expression("2*(wall.W1.length)+50", {}, {"W1": 1000.0})
        2050.0
    """
    wall_lengths = wall_lengths or {}

    def resolve(identifier: str) -> Optional[float]:
        if identifier in values:
            return values[identifier]
        match = WALL_LENGTH_PATTERN.match(identifier)
        if match:
            return wall_lengths.get(match.group(1))
        return None

    return evaluate_postfix(to_postfix(tokenize(expression)), resolve)


def extract_dependencies(expression: str) -> List[str]:
    """Identifiers referenced by an expression, in first-seen order."""
    seen: List[str] = []
    for match in IDENTIFIER_PATTERN.finditer(expression or ""):
        name = match.group(0)
        if name not in seen:
            seen.append(name)
    return seen
