import logging
import time

from watchrouter.utils.regex_safety import (
    MAX_INPUT_LENGTH,
    evaluate_regex_safely,
    evaluate_regex_safely_multiple,
    has_nested_quantifiers,
)


def test_nested_quantifiers_detected() -> None:
    assert has_nested_quantifiers("(a+)+$")
    assert has_nested_quantifiers("(x*)*y")
    assert has_nested_quantifiers("((ab)+c*)+")
    assert has_nested_quantifiers("(a{1,})+")


def test_plain_patterns_allowed() -> None:
    assert not has_nested_quantifiers("^anime$")
    assert not has_nested_quantifiers("(a+)b")
    assert not has_nested_quantifiers("(ab){2,3}")
    assert not has_nested_quantifiers("[(+)]+")
    assert not has_nested_quantifiers(r"\(a+\)+")


def test_catastrophic_pattern_rejected_quickly() -> None:
    value = "a" * 5000 + "!"
    start = time.perf_counter()
    assert evaluate_regex_safely("(a+)+$", value) is False
    assert time.perf_counter() - start < 0.05


def test_invalid_pattern_returns_false() -> None:
    assert evaluate_regex_safely("(unclosed", "unclosed") is False


def test_regex_search() -> None:
    assert evaluate_regex_safely("^PG", "PG-13")
    assert not evaluate_regex_safely("^R$", "PG-13")
    assert evaluate_regex_safely_multiple("^Ani", ["Drama", "Anime"])
    assert not evaluate_regex_safely_multiple("(a+)+$", ["aaaa"])


def test_overlapping_alternation_bounded() -> None:
    start = time.perf_counter()
    assert evaluate_regex_safely(r"(a|a)+$", "a" * 30 + "b") is False
    assert time.perf_counter() - start < 0.5


def test_repeated_optional_bounded() -> None:
    start = time.perf_counter()
    evaluate_regex_safely(r"(a?){25}a{25}", "a" * 25)
    assert time.perf_counter() - start < 0.5


def test_overlong_input_not_searched(caplog) -> None:
    value = "x" * (MAX_INPUT_LENGTH + 1)
    with caplog.at_level(logging.WARNING):
        assert evaluate_regex_safely("x", value) is False
    assert evaluate_regex_safely("x", value[:MAX_INPUT_LENGTH]) is True
    assert "longer than" in caplog.text
