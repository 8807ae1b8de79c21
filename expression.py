"""
Expression normalization and repair for AllCalc
Turns display text into something the evaluator can parse
"""
import re

from errors import IncompleteFunctionError

# Display glyph -> evaluator operator
SYMBOL_MAP = {
    "×": "*",
    "÷": "/",
    "−": "-",
}

# Every function name the keypad can open with "name("
FUNCTION_NAMES = (
    "sin", "cos", "tan", "asin", "acos", "atan",
    "sinh", "cosh", "tanh", "asinh", "acosh", "atanh",
    "log", "log10", "ln", "exp", "sqrt", "cbrt", "pow", "abs",
    "factorial", "combinations", "permutations", "nCr", "nPr",
)

_REPEATED_OPERATOR = re.compile(r"([+\-*/])\1+")
_INCOMPLETE_CALL = re.compile(
    r"(?<![A-Za-z0-9_])(" + "|".join(sorted(FUNCTION_NAMES, key=len, reverse=True)) + r")\($"
)


def normalize(expr):
    """Replace display glyphs with evaluator operators"""
    for glyph, operator in SYMBOL_MAP.items():
        expr = expr.replace(glyph, operator)
    return expr


def collapse_operators(expr):
    """Collapse runs of an identical binary operator (double key presses)"""
    return _REPEATED_OPERATOR.sub(r"\1", expr)


def balance_parentheses(expr):
    """Append the closing parentheses an expression is missing.

    Excess closing parentheses are left alone for the evaluator to reject.
    """
    missing = expr.count("(") - expr.count(")")
    if missing > 0:
        expr += ")" * missing
    return expr


def find_incomplete_function(expr):
    """Return the function name if the expression ends with ``name(``"""
    match = _INCOMPLETE_CALL.search(expr.rstrip())
    return match.group(1) if match else None


def repair(expr):
    """Repair a normalized expression before evaluation.

    Raises IncompleteFunctionError when the expression ends in an opened
    function call; that check runs before balancing so ``sin(`` is never
    turned into ``sin()``.
    """
    expr = collapse_operators(expr)

    function_name = find_incomplete_function(expr)
    if function_name:
        raise IncompleteFunctionError(function_name)

    return balance_parentheses(expr)
