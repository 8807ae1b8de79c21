"""
Graph Generator for AllCalc
Plots y = f(x) for the graphing calculator
"""
import io

import matplotlib
matplotlib.use('Agg')  # rendered to PNG for the web portal
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

import config
from errors import CalculatorError, EvaluatorFailure
from evaluator import create_evaluator, prepare_expression
from mode_policy import CalculatorMode


class GraphGenerator:
    def __init__(self, evaluator=None):
        # Graphs always allow the full function set
        self.evaluator = evaluator or create_evaluator(CalculatorMode.SCIENTIFIC)
        try:
            plt.style.use('seaborn-v0_8-darkgrid')
        except OSError:
            try:
                plt.style.use('seaborn-darkgrid')
            except OSError:
                plt.style.use('ggplot')

    def _create_fig(self, figsize=None):
        """Internal helper to create a figure with optional custom size"""
        if figsize is None:
            figsize = config.GRAPH_FIGSIZE
        return Figure(figsize=figsize, dpi=config.GRAPH_DPI)

    def sample(self, expression, x_min=None, x_max=None, samples=None):
        """Sample y = f(x) over [x_min, x_max].

        Points where f is undefined come back as None so the plot shows a
        gap; raises EvaluatorFailure if the expression is unusable everywhere.
        """
        if x_min is None or x_max is None:
            x_min, x_max = config.GRAPH_X_RANGE
        if samples is None:
            samples = config.GRAPH_SAMPLES
        if x_max <= x_min:
            raise ValueError("x_max must be greater than x_min")
        if samples < 2:
            raise ValueError("At least two samples are needed")

        # x is the only name that may vary
        parsed = self.evaluator.parse(prepare_expression(expression, self.evaluator.mode),
                                      variables=('x',))

        step = (x_max - x_min) / (samples - 1)
        xs = [x_min + i * step for i in range(samples)]
        ys = []
        for x in xs:
            try:
                ys.append(self.evaluator.value_of(parsed, {'x': x}))
            except CalculatorError:
                ys.append(None)

        if all(y is None for y in ys):
            raise EvaluatorFailure(f"{expression} is undefined on the whole range")
        return xs, ys

    def create_function_graph(self, expression, x_min=None, x_max=None, figsize=None):
        """Create a line graph of y = f(x)"""
        xs, ys = self.sample(expression, x_min, x_max)

        fig = self._create_fig(figsize)
        ax = fig.add_subplot(111)

        ax.plot(xs, [float('nan') if y is None else y for y in ys],
                label=f'y = {expression}', color='#2E8B57', linewidth=2)
        ax.axhline(y=0, color='black', linestyle='-', linewidth=0.5)
        ax.axvline(x=0, color='black', linestyle='-', linewidth=0.5)

        ax.set_xlabel('x')
        ax.set_ylabel('y')
        ax.set_title(f'y = {expression}')
        ax.legend()
        ax.grid(True, alpha=0.3)

        fig.tight_layout()
        return fig

    def render_png(self, expression, x_min=None, x_max=None, figsize=None):
        """PNG bytes of the function graph"""
        fig = self.create_function_graph(expression, x_min, x_max, figsize)
        buf = io.BytesIO()
        fig.savefig(buf, format='png')
        return buf.getvalue()
