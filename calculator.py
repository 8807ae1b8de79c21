"""
Calculator Engine for AllCalc
Input session: accumulates keypad, keyboard and voice input into an
expression and runs it through the evaluation pipeline
"""
import re
import time
from enum import Enum

import config
from errors import CalculatorError, ConversionError
from evaluator import (
    create_evaluator,
    evaluate_and_format,
    format_result,
    prepare_expression,
    record_calculation,
)
from expression import normalize
from mode_policy import CalculatorMode, ModeController


class SessionState(Enum):
    EMPTY = "Empty"
    EDITING = "Editing"
    RESULT_SHOWN = "ResultShown"


# Keys that wrap the whole current expression
WRAP_TEMPLATES = {
    "x²": "({})^2",
    "x³": "({})^3",
    "1/x": "1/({})",
    "√": "sqrt({})",
    "sqrt": "sqrt({})",
    "∛": "cbrt({})",
    "cbrt": "cbrt({})",
    "n!": "factorial({})",
    "|x|": "abs({})",
    "10^x": "10^({})",
}

# Keys that append a token for later completion
APPEND_TOKENS = {
    "sin": "sin(",
    "cos": "cos(",
    "tan": "tan(",
    "asin": "asin(",
    "acos": "acos(",
    "atan": "atan(",
    "log": "log(",
    "ln": "ln(",
    "exp": "exp(",
    "nCr": "combinations(",
    "combinations": "combinations(",
    "nPr": "permutations(",
    "permutations": "permutations(",
    "Mod": " mod ",
    "pi": "pi",
    "π": "pi",
    "e": "e",
    ",": ",",
}

PLAIN_KEYS = set("0123456789.+-−×÷*/^()")

# name shown in the expression, format code
BASE_CONVERSIONS = {
    "bin": ("dec_to_bin", "b"),
    "oct": ("dec_to_oct", "o"),
    "hex": ("dec_to_hex", "X"),
}

KEYBOARD_MAP = {
    "Enter": "=",
    "\r": "=",
    "\n": "=",
    "=": "=",
    "Backspace": "⌫",
    "Escape": "C",
    "Delete": "C",
    "*": "×",
    "/": "÷",
}

# Spoken operator words, longest phrases first
SPOKEN_OPERATORS = [
    (r"\bmultiplied by\b", "×"),
    (r"\bdivided by\b", "÷"),
    (r"\bopen (?:bracket|parenthesis)\b", "("),
    (r"\bclose (?:bracket|parenthesis)\b", ")"),
    (r"\bto the power of\b", "^"),
    (r"\bplus\b", "+"),
    (r"\bminus\b", "-"),
    (r"\btimes\b", "×"),
    (r"\bover\b", "÷"),
    (r"\bpoint\b", "."),
]
_SPOKEN_EQUALS = re.compile(r"\s*(?:is equal to|equal to|equals|equal|=)\s*$")
_INTEGER = re.compile(r"-?\d+")
_CONVERTED = re.compile(r"dec_to_(?:bin|oct|hex)\(-?\d+\)")


class Calculator:
    def __init__(self, mode=CalculatorMode.STANDARD, history=None, user_id=None,
                 classifier=None, mode_controller=None, clock=time.monotonic):
        self.current_expression = ""
        self.result = ""
        self.last_error = None
        self.notifications = []
        self.history = history
        self.user_id = user_id
        self.classifier = classifier
        self.clock = clock
        self.modes = mode_controller or ModeController(CalculatorMode.parse(mode), clock=clock)
        self._evaluator = None

    # ── State ────────────────────────────────────────────────────────────────
    @property
    def mode(self):
        return self.modes.mode

    @property
    def state(self):
        if self.result:
            return SessionState.RESULT_SHOWN
        if self.current_expression:
            return SessionState.EDITING
        return SessionState.EMPTY

    @property
    def evaluator(self):
        """Evaluator for the current mode, rebuilt when the mode changes"""
        if self._evaluator is None or self._evaluator.mode is not self.mode:
            self._evaluator = create_evaluator(self.mode)
        return self._evaluator

    def get_expression(self):
        """Get current expression"""
        return self.current_expression

    def get_display(self):
        """What the result line shows"""
        return self.result

    def notify(self, kind, title, description):
        self.notifications.append({'kind': kind, 'title': title, 'description': description})

    def drain_notifications(self):
        pending, self.notifications = self.notifications, []
        return pending

    # ── Input ────────────────────────────────────────────────────────────────
    def press(self, key):
        """Dispatch one keypad button"""
        if key == "=":
            return self.evaluate()
        if key == "C":
            return self.clear()
        if key == "⌫":
            return self.clear_entry()
        if key == "%":
            return self.percent()
        if key in BASE_CONVERSIONS:
            return self.convert_base(key)
        if key in WRAP_TEMPLATES:
            return self.apply_function(key)
        if key in APPEND_TOKENS:
            return self.add_token(APPEND_TOKENS[key])
        if key and all(ch in PLAIN_KEYS for ch in key):
            return self.add_token(key)
        raise ValueError(f"Unknown key: {key!r}")

    def key_press(self, key):
        """Handle a physical keyboard key"""
        return self.press(KEYBOARD_MAP.get(key, key))

    def add_token(self, token):
        """Append to the expression; typing after a result keeps editing it"""
        self.result = ""
        self.current_expression += str(token)
        self._expression_changed()
        return self.current_expression

    def apply_function(self, key):
        """Wrap the current expression with a unary function template"""
        self.result = ""
        self.current_expression = WRAP_TEMPLATES[key].format(self.current_expression)
        self._expression_changed()
        return self.current_expression

    def set_expression(self, expression):
        """Replace the whole expression (voice transcript)"""
        self.result = ""
        self.current_expression = expression
        if expression:
            self._expression_changed()
        else:
            self.modes.expression_cleared()
        return self.current_expression

    def clear(self):
        """Clear current expression"""
        self.current_expression = ""
        self.result = ""
        self.last_error = None
        self.modes.expression_cleared()
        return self.current_expression

    def clear_entry(self):
        """Clear last entry (backspace)"""
        self.result = ""
        self.current_expression = self.current_expression[:-1]
        if self.current_expression:
            self._expression_changed()
        else:
            self.modes.expression_cleared()
        return self.current_expression

    def voice_input(self, transcript):
        """Replace the expression with a spoken one; a trailing "equals" evaluates"""
        text = (transcript or "").strip().lower()
        wants_result = bool(_SPOKEN_EQUALS.search(text))
        text = _SPOKEN_EQUALS.sub("", text)
        for pattern, symbol in SPOKEN_OPERATORS:
            text = re.sub(pattern, symbol, text)
        text = re.sub(r"\s+", "", text)

        if text:
            self.set_expression(text)
        if wants_result:
            return self.evaluate()
        return self.current_expression

    # ── Evaluation ───────────────────────────────────────────────────────────
    def evaluate(self):
        """Evaluate the current expression; failures display "Error" """
        if not self.current_expression:
            return self.result

        try:
            self.result = evaluate_and_format(
                self.current_expression,
                self.mode,
                evaluator=self.evaluator,
                history=self.history,
                user_id=self.user_id,
            )
            self.last_error = None
        except CalculatorError as e:
            self._fail(e)
        return self.result

    def percent(self):
        """Evaluate the expression, divide by 100 and keep the literal result"""
        if not self.current_expression:
            return self.current_expression
        try:
            prepared = prepare_expression(self.current_expression, self.mode)
            value = self.evaluator.evaluate(prepared) / 100
            self.current_expression = format_result(value)
            self.result = ""
            self.last_error = None
            self._expression_changed()
        except CalculatorError as e:
            self._fail(e)
        return self.current_expression

    def convert_base(self, key):
        """Show the current integer in another base; not chainable"""
        name, code = BASE_CONVERSIONS[key]
        shown = self.result if self.result and self.result != config.ERROR_DISPLAY else ""
        source = normalize(shown or self.current_expression).strip()

        try:
            if shown and _CONVERTED.fullmatch(self.current_expression):
                raise ConversionError("A converted value cannot be converted again")
            if not _INTEGER.fullmatch(source):
                raise ConversionError(f"Only whole numbers can be converted, got {source or 'nothing'}")
            value = int(source)
            converted = format(abs(value), code)
            if value < 0:
                converted = "-" + converted
        except CalculatorError as e:
            self._fail(e)
            return self.result

        self.current_expression = f"{name}({value})"
        self.result = converted
        self.last_error = None
        record_calculation(self.history, self.user_id, self.current_expression, converted, self.mode)
        return self.result

    def _fail(self, error):
        self.result = config.ERROR_DISPLAY
        self.last_error = error
        self.notify("error", error.title, error.user_message)

    # ── Mode handling ────────────────────────────────────────────────────────
    def switch_mode(self, mode):
        """Manual mode switch; starts a fresh calculation"""
        changed = self.modes.switch_manually(mode)
        if changed:
            self.current_expression = ""
            self.result = ""
            self.last_error = None
        return changed

    def _expression_changed(self):
        self.modes.expression_changed(self.current_expression)

    def request_classification(self, now=None):
        """Expression due for classification, if the debounce has passed"""
        return self.modes.due_classification(now)

    def receive_classification(self, requested_for, mode, now=None):
        """Apply a classifier verdict computed for ``requested_for``"""
        return self.modes.apply_classification(requested_for, mode, self.current_expression, now)

    def tick(self, now=None):
        """Run a due classification through the classifier; True if the mode changed"""
        if self.classifier is None:
            return False
        requested_for = self.request_classification(now)
        if requested_for is None:
            return False
        verdict = self.classifier.classify(requested_for)
        return self.receive_classification(requested_for, verdict, now)

    def to_dict(self):
        return {
            'expression': self.current_expression,
            'result': self.result,
            'mode': self.mode.value,
            'state': self.state.value,
            'mode_locked': self.modes.is_suppressed(),
            'error': type(self.last_error).__name__ if self.last_error else None,
        }
