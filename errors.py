"""
Error taxonomy for AllCalc
Every failure of the evaluation pipeline is one of these; the input session
turns all of them into the single display string "Error".
"""


class CalculatorError(Exception):
    """Base class for recoverable calculator failures"""
    title = "Invalid Expression"
    explain_to_user = False

    @property
    def user_message(self):
        """Toast text; internal details stay out of it unless meaningful"""
        if self.explain_to_user:
            return str(self)
        return "Please check your calculation."


class IncompleteFunctionError(CalculatorError):
    """Expression ends with an opened function call such as ``sin(``"""
    explain_to_user = True

    def __init__(self, function_name):
        self.function_name = function_name
        super().__init__(f"Incomplete function call: {function_name}(")


class ForbiddenFunctionError(CalculatorError):
    """Token is not available in the current calculator mode"""
    title = "Not Available"
    explain_to_user = True

    def __init__(self, token, mode=None):
        self.token = token
        self.mode = mode
        mode_name = mode.value if mode is not None else "Standard"
        super().__init__(f"Function {token} is not available in {mode_name} mode")


class InvalidResultError(CalculatorError):
    """Evaluator returned something that is not a finite real number"""
    title = "Invalid Result"


class EvaluatorFailure(CalculatorError):
    """Evaluator rejected the expression (syntax or runtime error)"""


class ConversionError(CalculatorError):
    """Base conversion requested on a non-integer value"""
    title = "Conversion Failed"
    explain_to_user = True


class ClassifierFailure(CalculatorError):
    """Mode classifier unreachable or returned an unusable reply"""


class SolverFailure(CalculatorError):
    """Step solver unreachable or returned an unusable reply"""
    title = "Teacher Mode Unavailable"
    explain_to_user = True
