"""
Teacher Mode for AllCalc
Step-by-step explanations next to the normal result
"""
import logging

from errors import SolverFailure

logger = logging.getLogger(__name__)


class TeacherMode:
    def __init__(self, solver):
        self.solver = solver

    def explain(self, calculator):
        """Solve the calculator's expression step by step.

        The plain result is always computed as well. When the solver fails
        the user is told and only the plain result is shown; returns the
        Solution or None.
        """
        expression = calculator.get_expression()
        if not expression:
            return None

        try:
            solution = self.solver.solve(expression)
        except SolverFailure as e:
            logger.warning("Step solver failed for %r: %s", expression, e)
            calculator.notify("warning", e.title,
                              "Could not build a step-by-step solution; showing the result only.")
            solution = None

        calculator.evaluate()
        return solution

    def solve_equation(self, equation):
        """Step-by-step solution of an algebraic equation; raises SolverFailure"""
        equation = (equation or "").strip()
        if not equation:
            raise SolverFailure("Please enter an equation to solve.")
        return self.solver.solve_equation(equation)
