"""
Tests for mode authorization and automatic mode switching
"""
import pytest

from errors import ForbiddenFunctionError
from mode_policy import (
    ADVANCED_FUNCTIONS,
    CalculatorMode,
    ModeController,
    authorize,
    extract_tokens,
)

STANDARD = CalculatorMode.STANDARD
SCIENTIFIC = CalculatorMode.SCIENTIFIC


@pytest.mark.parametrize("token", sorted(ADVANCED_FUNCTIONS))
def test_advanced_tokens_are_forbidden_in_standard(token):
    with pytest.raises(ForbiddenFunctionError) as exc:
        authorize({token}, STANDARD)
    assert exc.value.token == token


@pytest.mark.parametrize("token", sorted(ADVANCED_FUNCTIONS))
def test_advanced_tokens_are_allowed_in_scientific(token):
    assert authorize({token}, SCIENTIFIC) is None


def test_constants_and_abs_are_standard():
    assert authorize({"pi", "e", "abs"}, STANDARD) is None


def test_first_forbidden_token_is_reported():
    with pytest.raises(ForbiddenFunctionError) as exc:
        authorize(["cos", "sin"], STANDARD)
    assert exc.value.token == "cos"
    assert "Standard" in str(exc.value)

    with pytest.raises(ForbiddenFunctionError) as exc:
        authorize({"tan", "cos"}, STANDARD)
    assert exc.value.token == "cos"


def test_extract_tokens_in_order():
    assert extract_tokens("2*sin(x)+cos(1)-sin(2)") == ["sin", "x", "cos"]
    assert extract_tokens("1+2") == []


def test_extract_tokens_skips_number_exponents():
    assert extract_tokens("2e5+x") == ["x"]
    assert extract_tokens("1.5E-3*log10(7e+2)") == ["log10"]
    assert extract_tokens("2e") == ["e"]


def test_parse_mode():
    assert CalculatorMode.parse("scientific") is SCIENTIFIC
    assert CalculatorMode.parse(STANDARD) is STANDARD
    with pytest.raises(ValueError):
        CalculatorMode.parse("Graphing")


def make_controller(clock, **kwargs):
    kwargs.setdefault("cooldown", 1.0)
    kwargs.setdefault("debounce", 0.5)
    kwargs.setdefault("revert_on_clear", False)
    return ModeController(clock=clock, **kwargs)


def test_classification_waits_for_debounce(clock):
    modes = make_controller(clock)
    modes.expression_changed("sin(")
    clock.advance(0.3)
    modes.expression_changed("sin(3")
    clock.advance(0.3)
    assert modes.due_classification() is None
    clock.advance(0.3)
    assert modes.due_classification() == "sin(3"
    assert modes.due_classification() is None


def test_empty_expression_never_schedules(clock):
    modes = make_controller(clock)
    modes.expression_changed("")
    clock.advance(5)
    assert modes.due_classification() is None


def test_apply_classification_changes_mode(clock):
    modes = make_controller(clock)
    assert modes.apply_classification("sin(3)", SCIENTIFIC, "sin(3)")
    assert modes.mode is SCIENTIFIC


def test_stale_classification_is_ignored(clock):
    modes = make_controller(clock)
    assert not modes.apply_classification("sin(3)", SCIENTIFIC, "sin(3)+1")
    assert modes.mode is STANDARD


def test_manual_switch_suppresses_automatic_changes(clock):
    modes = make_controller(clock)
    modes.switch_manually(STANDARD)
    clock.advance(0.5)
    assert modes.is_suppressed()
    assert not modes.apply_classification("sin(3)", SCIENTIFIC, "sin(3)")
    assert modes.mode is STANDARD

    clock.advance(0.6)
    assert not modes.is_suppressed()
    assert modes.apply_classification("sin(3)", SCIENTIFIC, "sin(3)")
    assert modes.mode is SCIENTIFIC


def test_manual_switch_reports_change(clock):
    modes = make_controller(clock)
    assert modes.switch_manually("Scientific")
    assert not modes.switch_manually(SCIENTIFIC)


def test_clear_keeps_mode_by_default(clock):
    modes = make_controller(clock, mode=SCIENTIFIC)
    assert not modes.expression_cleared()
    assert modes.mode is SCIENTIFIC


def test_clear_can_revert_to_standard(clock):
    modes = make_controller(clock, mode=SCIENTIFIC, revert_on_clear=True)
    assert modes.expression_cleared()
    assert modes.mode is STANDARD


def test_revert_on_clear_respects_suppression(clock):
    modes = make_controller(clock, revert_on_clear=True)
    modes.switch_manually(SCIENTIFIC)
    assert not modes.expression_cleared()
    assert modes.mode is SCIENTIFIC
