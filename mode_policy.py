"""
Mode Policy for AllCalc
Decides which functions each calculator mode may evaluate and when the
mode may change on its own
"""
import re
import time
from enum import Enum

import config
from errors import ForbiddenFunctionError


class CalculatorMode(Enum):
    STANDARD = "Standard"
    SCIENTIFIC = "Scientific"

    @classmethod
    def parse(cls, value):
        """Accept 'Standard'/'scientific'/a CalculatorMode"""
        if isinstance(value, cls):
            return value
        for mode in cls:
            if str(value).strip().lower() == mode.value.lower():
                return mode
        raise ValueError(f"Unknown calculator mode: {value!r}")


# Names only Scientific mode may evaluate
ADVANCED_FUNCTIONS = frozenset({
    # trigonometric
    "sin", "cos", "tan", "asin", "acos", "atan",
    # hyperbolic
    "sinh", "cosh", "tanh", "asinh", "acosh", "atanh",
    # logarithmic / exponential
    "log", "log10", "ln", "exp",
    # roots and powers
    "sqrt", "cbrt", "pow",
    # counting
    "factorial", "combinations", "permutations", "nCr", "nPr", "mod",
    # meta operations
    "parse", "simplify", "derivative", "eval", "import", "createUnit",
})

# Numeric literals (exponents included) are matched first so "2e5" is one number
NUMBER_LITERAL = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_TOKEN = re.compile(r"(?P<number>" + NUMBER_LITERAL.pattern + r")|(?P<name>[A-Za-z_][A-Za-z_0-9]*)")


def extract_tokens(expr):
    """Identifier tokens of an expression, in order of first appearance"""
    seen = []
    for match in _TOKEN.finditer(expr):
        token = match.group("name")
        if token and token not in seen:
            seen.append(token)
    return seen


def authorize(tokens, mode):
    """Raise ForbiddenFunctionError if ``mode`` may not evaluate ``tokens``.

    Scientific authorizes everything. For Standard the first advanced token
    is reported: appearance order for a list, sorted order for a set.
    """
    if mode is CalculatorMode.SCIENTIFIC:
        return
    ordered = sorted(tokens) if isinstance(tokens, (set, frozenset)) else list(tokens)
    for token in ordered:
        if token in ADVANCED_FUNCTIONS:
            raise ForbiddenFunctionError(token, mode)


class ModeController:
    """Owns the current mode, manual-switch suppression and the
    debounced automatic classification request."""

    def __init__(self, mode=CalculatorMode.STANDARD, cooldown=None, debounce=None,
                 revert_on_clear=None, clock=time.monotonic):
        self.mode = mode
        self.cooldown = config.MODE_SWITCH_COOLDOWN if cooldown is None else cooldown
        self.debounce = config.CLASSIFY_DEBOUNCE if debounce is None else debounce
        self.revert_on_clear = (config.REVERT_MODE_ON_CLEAR
                                if revert_on_clear is None else revert_on_clear)
        self.clock = clock
        self.suppressed_until = None
        self._pending_expression = None
        self._pending_since = None

    def _now(self, now):
        return self.clock() if now is None else now

    def is_suppressed(self, now=None):
        """Automatic switching is ignored until the cool-down elapses"""
        if self.suppressed_until is None:
            return False
        if self._now(now) >= self.suppressed_until:
            self.suppressed_until = None
            return False
        return True

    def switch_manually(self, mode, now=None):
        """User picked a mode; returns True if it changed"""
        mode = CalculatorMode.parse(mode)
        self.suppressed_until = self._now(now) + self.cooldown
        self._pending_expression = None
        changed = mode is not self.mode
        self.mode = mode
        return changed

    def expression_changed(self, expr, now=None):
        """Restart the debounce timer for the latest expression"""
        if not expr:
            self._pending_expression = None
            self._pending_since = None
            return
        self._pending_expression = expr
        self._pending_since = self._now(now)

    def due_classification(self, now=None):
        """Expression to classify once input has been quiet long enough"""
        if self._pending_expression is None:
            return None
        if self._now(now) - self._pending_since < self.debounce:
            return None
        expr = self._pending_expression
        self._pending_expression = None
        self._pending_since = None
        return expr

    def apply_classification(self, requested_for, mode, current_expr, now=None):
        """Apply a classifier verdict unless it is stale or suppressed"""
        if requested_for != current_expr or not current_expr:
            return False
        if self.is_suppressed(now):
            return False
        mode = CalculatorMode.parse(mode)
        if mode is self.mode:
            return False
        self.mode = mode
        return True

    def expression_cleared(self, now=None):
        """Optionally fall back to Standard when the expression is cleared"""
        self._pending_expression = None
        self._pending_since = None
        if not self.revert_on_clear or self.is_suppressed(now):
            return False
        if self.mode is CalculatorMode.SCIENTIFIC:
            self.mode = CalculatorMode.STANDARD
            return True
        return False
