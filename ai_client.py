"""
AI collaborators for AllCalc
Mode classification and step-by-step solving over an OpenAI-compatible
chat completions endpoint
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import List

import requests

import config
from errors import ClassifierFailure, SolverFailure
from mode_policy import CalculatorMode

logger = logging.getLogger(__name__)

# Only expressions containing one of these can need Scientific mode
SCIENTIFIC_HINT = re.compile(r"[a-z√^!]", re.IGNORECASE)

CLASSIFY_PROMPT = (
    "Decide whether a calculator needs Standard or Scientific mode for this "
    "expression.\n\nExpression: {expression}\n\n"
    "Answer Standard for basic arithmetic and Scientific when it uses "
    "trigonometry, logarithms, exponents, roots or factorials. "
    'Reply with JSON only: {{"mode": "Standard"}} or {{"mode": "Scientific"}}.'
)

EXPRESSION_PROMPT = (
    "You are a patient math tutor. Solve the expression below one operation "
    "at a time, following the order of operations.\n\nExpression: {expression}\n\n"
    "For every step give the operation performed, why it comes next, and the "
    "whole expression after that operation. The last step's result is the "
    "final answer.\n"
    'Reply with JSON only: {{"steps": [{{"step": "...", "explanation": "...", '
    '"result": "..."}}], "finalAnswer": "..."}}'
)

EQUATION_PROMPT = (
    "You are an algebra tutor. Solve the equation below for its variable, one "
    "manipulation at a time.\n\nEquation: {equation}\n\n"
    "For every step give the manipulation (e.g. subtract 5 from both sides), "
    "why it helps, and the equation after it. Quadratics may be factored or "
    "solved with the quadratic formula.\n"
    'Reply with JSON only: {{"steps": [{{"step": "...", "explanation": "...", '
    '"result": "..."}}], "finalAnswer": "x = ..."}}'
)


@dataclass
class SolutionStep:
    step: str
    explanation: str
    result: str

    def to_dict(self):
        return {'step': self.step, 'explanation': self.explanation, 'result': self.result}


@dataclass
class Solution:
    steps: List[SolutionStep] = field(default_factory=list)
    final_answer: str = ""

    def to_dict(self):
        return {
            'steps': [s.to_dict() for s in self.steps],
            'finalAnswer': self.final_answer
        }


def extract_json(text):
    """Pull the first JSON object out of a model reply (fences allowed)"""
    t = (text or "").strip()
    if t.startswith("```"):
        t = re.sub(r"^```[a-zA-Z0-9_-]*\n", "", t)
        t = re.sub(r"\n```\s*$", "", t).strip()
    try:
        obj = json.loads(t)
        if isinstance(obj, dict):
            return obj
    except ValueError:
        pass
    m = re.search(r"\{.*\}", t, flags=re.S)
    if not m:
        return None
    try:
        obj = json.loads(m.group(0))
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


class LLMClient:
    """Minimal chat-completions client"""

    def __init__(self, base_url=None, api_key=None, model=None, timeout=None,
                 temperature=None, session=None):
        self.base_url = (config.LLM_BASE_URL if base_url is None else base_url).rstrip("/")
        self.api_key = config.LLM_API_KEY if api_key is None else api_key
        self.model = config.LLM_MODEL if model is None else model
        self.timeout = config.LLM_TIMEOUT_SECONDS if timeout is None else timeout
        self.temperature = config.LLM_TEMPERATURE if temperature is None else temperature
        self.http = session or requests

    @property
    def available(self):
        return bool(self.base_url and self.model)

    def chat(self, prompt):
        """Send one user message and return the reply text.

        Raises requests.RequestException on transport errors and ValueError
        when the reply has no message content.
        """
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
        }
        response = self.http.post(
            f"{self.base_url}/v1/chat/completions",
            json=payload,
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ValueError("Chat completion without message content")


class ModeClassifier:
    """Best-effort Standard/Scientific classifier; never raises"""

    def __init__(self, client=None):
        self.client = client or LLMClient()

    def classify(self, expression):
        if not expression or not expression.strip():
            return CalculatorMode.STANDARD
        if not SCIENTIFIC_HINT.search(expression):
            return CalculatorMode.STANDARD
        try:
            return self._ask(expression)
        except ClassifierFailure as e:
            logger.warning("Mode classification failed for %r: %s", expression, e)
            return CalculatorMode.STANDARD

    def _ask(self, expression):
        if not self.client.available:
            raise ClassifierFailure("No language model configured")
        try:
            reply = self.client.chat(CLASSIFY_PROMPT.format(expression=expression))
        except (requests.RequestException, ValueError) as e:
            raise ClassifierFailure(str(e)) from e

        obj = extract_json(reply)
        label = obj.get("mode") if obj else (reply or "").strip()
        try:
            return CalculatorMode.parse(label)
        except ValueError as e:
            raise ClassifierFailure(f"Unusable classifier reply: {reply!r}") from e


class StepSolver:
    """Step-by-step explanations for expressions and equations"""

    def __init__(self, client=None):
        self.client = client or LLMClient()

    def solve(self, expression):
        return self._run(EXPRESSION_PROMPT.format(expression=expression))

    def solve_equation(self, equation):
        if equation.count("=") != 1:
            raise SolverFailure("Equation must contain exactly one '=' sign")
        return self._run(EQUATION_PROMPT.format(equation=equation))

    def _run(self, prompt):
        if not self.client.available:
            raise SolverFailure("No language model configured")
        try:
            reply = self.client.chat(prompt)
        except (requests.RequestException, ValueError) as e:
            raise SolverFailure(str(e)) from e
        return parse_solution(reply)


def parse_solution(reply):
    """Validate a solver reply into a Solution, raising SolverFailure"""
    obj = extract_json(reply)
    if not obj or not isinstance(obj.get("steps"), list):
        raise SolverFailure("Failed to get a solution from the AI model.")

    steps = []
    for item in obj["steps"]:
        if not isinstance(item, dict) or "step" not in item:
            raise SolverFailure(f"Malformed solution step: {item!r}")
        steps.append(SolutionStep(
            step=str(item["step"]),
            explanation=str(item.get("explanation", "")),
            result=str(item.get("result", "")),
        ))

    final_answer = obj.get("finalAnswer", obj.get("final_answer"))
    if final_answer is None:
        final_answer = steps[-1].result if steps else ""
    return Solution(steps, str(final_answer))
