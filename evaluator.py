"""
Evaluation Engine for AllCalc
Builds an isolated SymPy-backed evaluator per calculator mode, validates
what it returns and formats the display result
"""
import ast
import logging
import math
import operator
import re
from dataclasses import dataclass, field

import sympy
from sympy.parsing.sympy_parser import (
    auto_number,
    auto_symbol,
    convert_xor,
    eval_expr,
    stringify_expr,
)

import config
from errors import (
    CalculatorError,
    EvaluatorFailure,
    ForbiddenFunctionError,
    InvalidResultError,
)
from expression import normalize, repair
from mode_policy import (
    ADVANCED_FUNCTIONS,
    NUMBER_LITERAL,
    CalculatorMode,
    authorize,
    extract_tokens,
)

logger = logging.getLogger(__name__)

# factorial_notation is left out on purpose: "5!" must go through factorial()
TRANSFORMATIONS = (auto_symbol, auto_number, convert_xor)

# Every callable an evaluator can expose, keyed by the name typed by the user
FUNCTION_TABLE = {
    "abs": sympy.Abs,
    "sin": sympy.sin,
    "cos": sympy.cos,
    "tan": sympy.tan,
    "asin": sympy.asin,
    "acos": sympy.acos,
    "atan": sympy.atan,
    "sinh": sympy.sinh,
    "cosh": sympy.cosh,
    "tanh": sympy.tanh,
    "asinh": sympy.asinh,
    "acosh": sympy.acosh,
    "atanh": sympy.atanh,
    "log": lambda x: sympy.log(x, 10),
    "log10": lambda x: sympy.log(x, 10),
    "ln": sympy.log,
    "exp": sympy.exp,
    "sqrt": sympy.sqrt,
    "cbrt": lambda x: sympy.real_root(x, 3),
    "pow": sympy.Pow,
    "factorial": sympy.factorial,
    "combinations": sympy.binomial,
    "nCr": sympy.binomial,
    "permutations": lambda n, k: sympy.factorial(n) / sympy.factorial(n - k),
    "nPr": lambda n, k: sympy.factorial(n) / sympy.factorial(n - k),
}

CONSTANTS = {
    "pi": sympy.pi,
    "e": sympy.E,
    "E": sympy.E,
}

BASIC_FUNCTIONS = frozenset(name for name in FUNCTION_TABLE if name not in ADVANCED_FUNCTIONS)


def _combinations(n, k):
    return math.exp(math.lgamma(n + 1) - math.lgamma(k + 1) - math.lgamma(n - k + 1))


def _permutations(n, k):
    return math.exp(math.lgamma(n + 1) - math.lgamma(n - k + 1))


def _cbrt(x):
    return math.copysign(abs(x) ** (1 / 3), x)


# Float counterparts of FUNCTION_TABLE, used only to estimate magnitudes
FLOAT_FUNCTIONS = {
    "abs": abs,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "sinh": math.sinh,
    "cosh": math.cosh,
    "tanh": math.tanh,
    "asinh": math.asinh,
    "acosh": math.acosh,
    "atanh": math.atanh,
    "log": math.log10,
    "log10": math.log10,
    "ln": math.log,
    "exp": math.exp,
    "sqrt": math.sqrt,
    "cbrt": _cbrt,
    "pow": math.pow,
    "factorial": lambda n: math.gamma(n + 1),
    "combinations": _combinations,
    "nCr": _combinations,
    "permutations": _permutations,
    "nPr": _permutations,
}

FLOAT_CONSTANTS = {
    "pi": math.pi,
    "e": math.e,
    "E": math.e,
}

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPERATORS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

# Wrappers the parser puts around number literals and free names
_LITERAL_WRAPPERS = ("Integer", "Float", "Rational")

_LEADING_ZEROS = re.compile(r"(?<![\d.])0+(?=\d)")
_MOD_WORD = re.compile(r"\bmod\b")
_ALLOWED_TEXT = re.compile(r"[0-9A-Za-z.+\-*/^%(),\s]*")


@dataclass(frozen=True)
class EvaluatorConfiguration:
    mode: CalculatorMode
    enabled_functions: frozenset = field(default_factory=frozenset)

    @classmethod
    def for_mode(cls, mode):
        mode = CalculatorMode.parse(mode)
        if mode is CalculatorMode.SCIENTIFIC:
            return cls(mode, frozenset(FUNCTION_TABLE))
        return cls(mode, BASIC_FUNCTIONS)


def _disabled(name, mode):
    def _raise(*args):
        raise ForbiddenFunctionError(name, mode)
    return _raise


def _number_literal(value):
    # Literals are floats, as on a pocket calculator; SymPy never builds huge exact integers
    return sympy.Float(value)


def _estimate(function, *args):
    """Float value of ``function(*args)``, None when there is no real float value.

    Raises InvalidResultError when the value is too large for a float.
    """
    try:
        value = function(*args)
    except OverflowError as e:
        raise InvalidResultError("Result is too large to represent") from e
    except (ArithmeticError, ValueError, TypeError):
        return None
    if isinstance(value, complex) or math.isnan(value):
        return None
    if math.isinf(value):
        raise InvalidResultError("Result is too large to represent")
    return float(value)


class MagnitudeCheck:
    """Walks the code generated by the parser before SymPy runs it.

    Only arithmetic, calls of calculator functions, number literals and
    free names may appear. Values that are known are followed with floats,
    so a result too large for a float is an InvalidResultError before any
    exact computation starts.
    """

    def __init__(self, enabled_functions):
        self.enabled_functions = enabled_functions

    def visit(self, node):
        if isinstance(node, ast.Expression):
            return self.visit(node.body)
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
            left, right = self.visit(node.left), self.visit(node.right)
            if left is None or right is None:
                return None
            return _estimate(_BINARY_OPERATORS[type(node.op)], left, right)
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
            operand = self.visit(node.operand)
            if operand is None:
                return None
            return _estimate(_UNARY_OPERATORS[type(node.op)], operand)
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
            return self._call(node.func.id, node.args)
        if isinstance(node, ast.Name):
            if node.id in FLOAT_CONSTANTS:
                return FLOAT_CONSTANTS[node.id]
            if node.id in FUNCTION_TABLE:
                return None
        if isinstance(node, ast.Constant) and type(node.value) in (int, float):
            return _estimate(float, node.value)
        if isinstance(node, ast.Tuple):
            for element in node.elts:
                self.visit(element)
            return None
        raise EvaluatorFailure(f"Unsupported syntax: {type(node).__name__}")

    def _call(self, name, args):
        if name in _LITERAL_WRAPPERS or name == "Symbol":
            if len(args) != 1 or not isinstance(args[0], ast.Constant):
                raise EvaluatorFailure(f"Malformed literal: {name}")
            if name == "Symbol":
                return None
            return _estimate(float, args[0].value)
        if name not in FUNCTION_TABLE:
            raise EvaluatorFailure(f"Unknown function: {name}")

        values = [self.visit(arg) for arg in args]
        if name not in self.enabled_functions or any(v is None for v in values):
            return None
        return _estimate(FLOAT_FUNCTIONS[name], *values)


class Evaluator:
    """Numeric evaluator bound to one configuration.

    Each instance owns its namespace; nothing is shared between modes.
    """

    def __init__(self, configuration):
        self.configuration = configuration
        namespace = dict(CONSTANTS)
        for name, function in FUNCTION_TABLE.items():
            if name in configuration.enabled_functions:
                namespace[name] = function
            else:
                namespace[name] = _disabled(name, configuration.mode)
        self._namespace = namespace
        self._globals = {
            "__builtins__": {},
            "Integer": _number_literal,
            "Float": sympy.Float,
            "Rational": sympy.Rational,
            "Symbol": sympy.Symbol,
        }

    @property
    def mode(self):
        return self.configuration.mode

    def prepare(self, expr):
        """Evaluator-specific spelling: leading zeros and the mod keyword"""
        expr = _LEADING_ZEROS.sub("", expr)
        return _MOD_WORD.sub("%", expr)

    def screen(self, text, variables=()):
        """Reject text that is not a calculator expression.

        Only calculator characters are allowed, every name must be a known
        function, a constant or one of ``variables``, and a dot may only
        appear inside a number.
        """
        if not _ALLOWED_TEXT.fullmatch(text):
            raise EvaluatorFailure("Expression contains characters a calculator does not use")
        if "." in NUMBER_LITERAL.sub("", text):
            raise EvaluatorFailure("Misplaced decimal point")
        for name in extract_tokens(text):
            if name not in self._namespace and name not in variables:
                raise EvaluatorFailure(f"Unknown name: {name}")

    def evaluate(self, expr, bindings=None):
        """Evaluate ``expr`` to a finite float.

        Raises EvaluatorFailure for anything the parser or SymPy rejects and
        InvalidResultError when the value is not a finite real number.
        """
        return self.value_of(self.parse(expr, variables=tuple(bindings or ())), bindings)

    def parse(self, expr, variables=()):
        """Parse without substituting anything; ``variables`` stay symbolic"""
        if not expr or not expr.strip():
            raise EvaluatorFailure("Empty expression")
        text = self.prepare(expr)
        self.screen(text, variables)

        local_dict = dict(self._namespace)
        global_dict = dict(self._globals)
        try:
            code = stringify_expr(text, local_dict, global_dict, TRANSFORMATIONS)
            tree = ast.parse(code, mode="eval")
        except Exception as e:
            raise EvaluatorFailure(str(e) or type(e).__name__) from e

        MagnitudeCheck(self.configuration.enabled_functions).visit(tree)

        try:
            return eval_expr(code, local_dict, global_dict)
        except CalculatorError:
            raise
        except Exception as e:
            raise EvaluatorFailure(str(e) or type(e).__name__) from e

    def value_of(self, parsed, bindings=None):
        """Numeric value of a parsed expression under ``bindings``"""
        if bindings and isinstance(parsed, sympy.Basic):
            try:
                parsed = parsed.subs({sympy.Symbol(k): v for k, v in bindings.items()})
            except Exception as e:
                raise EvaluatorFailure(str(e) or type(e).__name__) from e
        return self._to_number(parsed)

    def _to_number(self, value):
        try:
            number = self._as_float(value)
        except OverflowError as e:
            raise InvalidResultError(f"Result is not finite: {value}") from e
        if not math.isfinite(number):
            raise InvalidResultError(f"Result is not finite: {number}")
        return number

    def _as_float(self, value):
        if isinstance(value, bool) or value is None:
            raise InvalidResultError(f"Invalid evaluation result: {value!r}")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, sympy.Basic):
            if value.is_number is not True:
                if value.free_symbols or value.atoms(sympy.core.function.AppliedUndef):
                    raise EvaluatorFailure(f"Undefined name in: {value}")
                raise InvalidResultError(f"Invalid evaluation result: {value}")
            try:
                evaluated = value.evalf()
            except (ArithmeticError, ValueError, TypeError) as e:
                # mpmath raises at poles, e.g. factorial of a negative number
                raise InvalidResultError(f"Result is undefined: {value}") from e
            if evaluated.is_real is not True:
                raise InvalidResultError(f"Result is not a real number: {evaluated}")
            return float(evaluated)
        raise InvalidResultError(f"Invalid evaluation result: {value!r}")


def create_evaluator(configuration):
    """Build an isolated evaluator for a configuration or a mode"""
    if not isinstance(configuration, EvaluatorConfiguration):
        configuration = EvaluatorConfiguration.for_mode(configuration)
    return Evaluator(configuration)


def format_result(value, precision=config.RESULT_PRECISION):
    """Round to ``precision`` places and render the shortest string form"""
    rounded = round(float(value), precision)
    if rounded == 0:
        return "0"
    if rounded.is_integer() and abs(rounded) < 1e16:
        return str(int(rounded))
    return repr(rounded)


def prepare_expression(expr, mode):
    """normalize -> repair -> authorize; returns the evaluator-ready text"""
    repaired = repair(normalize(expr))
    authorize(extract_tokens(repaired), CalculatorMode.parse(mode))
    return repaired


def evaluate_and_format(expr, mode=CalculatorMode.STANDARD, evaluator=None,
                        history=None, user_id=None):
    """Run the full pipeline and return the display result.

    On success, and only when a user is known, the calculation is handed to
    ``history``; a persistence failure is logged and never reaches the caller.
    """
    mode = CalculatorMode.parse(mode)
    if evaluator is None or evaluator.mode is not mode:
        evaluator = create_evaluator(mode)

    repaired = prepare_expression(expr, mode)
    display = format_result(evaluator.evaluate(repaired))

    record_calculation(history, user_id, expr, display, mode)
    return display


def record_calculation(history, user_id, expression, result, mode=CalculatorMode.STANDARD):
    """Fire-and-forget hand-off to history; no user means nothing is stored"""
    if history is None or not user_id:
        return
    try:
        history.add_calculation(user_id, expression, result, CalculatorMode.parse(mode).value)
    except Exception:
        logger.warning("Could not record calculation for user %s", user_id, exc_info=True)
