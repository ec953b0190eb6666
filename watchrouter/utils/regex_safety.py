"""
Regex guard for user supplied routing patterns

Patterns come from router rules. Nested unbounded quantifiers (e.g.
'(a+)+$') are refused up front. Everything else runs on the `regex` engine
with a hard per-search timeout, and overlong inputs are not searched at all.
Unsafe, invalid or timed out patterns never match.
"""
import logging
import re
from functools import lru_cache
from typing import Iterable, Optional

import regex

logger = logging.getLogger(__name__)

# Per search, seconds
MATCH_TIMEOUT = 0.02
MAX_INPUT_LENGTH = 1000


_BRACE_QUANTIFIER = re.compile(r"\{(\d*)(,?)(\d*)\}")


class _Frame:
    __slots__ = ("has_unbounded",)

    def __init__(self):
        self.has_unbounded = False


def _skip_class(pattern: str, i: int) -> int:
    """Index just past the character class starting at pattern[i] == '['"""
    i += 1
    if i < len(pattern) and pattern[i] == "^":
        i += 1
    if i < len(pattern) and pattern[i] == "]":
        i += 1
    while i < len(pattern) and pattern[i] != "]":
        if pattern[i] == "\\":
            i += 1
        i += 1
    return i + 1


def _read_quantifier(pattern: str, i: int):
    """Returns (is_unbounded, next_index) or (None, i) when no quantifier follows"""
    if i >= len(pattern):
        return None, i
    ch = pattern[i]
    if ch in "*+":
        unbounded, end = True, i + 1
    elif ch == "?":
        unbounded, end = False, i + 1
    elif ch == "{":
        match = _BRACE_QUANTIFIER.match(pattern, i)
        if not match or not (match.group(1) or match.group(3)):
            return None, i
        unbounded = bool(match.group(2)) and not match.group(3)
        end = match.end()
    else:
        return None, i

    # lazy / possessive suffix
    if end < len(pattern) and pattern[end] in "?+":
        end += 1
    return unbounded, end


def has_nested_quantifiers(pattern: str) -> bool:
    """True if an unboundedly repeated group itself contains unbounded repetition"""
    stack = [_Frame()]
    i = 0
    n = len(pattern)

    while i < n:
        ch = pattern[i]

        if ch == "\\":
            i += 2
        elif ch == "[":
            i = _skip_class(pattern, i)
        elif ch == "(":
            stack.append(_Frame())
            i += 1
            continue
        elif ch == ")":
            if len(stack) == 1:
                # Unbalanced, compile() reports it
                i += 1
                continue
            frame = stack.pop()
            i += 1
            unbounded, i = _read_quantifier(pattern, i)
            if unbounded and frame.has_unbounded:
                return True
            if frame.has_unbounded or unbounded:
                stack[-1].has_unbounded = True
            continue
        else:
            i += 1

        unbounded, i = _read_quantifier(pattern, i)
        if unbounded:
            stack[-1].has_unbounded = True

    return False




@lru_cache(maxsize=512)
def _compile(pattern: str):
    """Returns (compiled or None, reason)"""
    try:
        compiled = regex.compile(pattern)
    except regex.error as e:
        return None, f"invalid: {e}"
    if has_nested_quantifiers(pattern):
        return None, "unsafe"
    return compiled, ""


def _checked(pattern: str, log: logging.Logger, context: str):
    compiled, reason = _compile(pattern)
    if compiled is None:
        if reason == "unsafe":
            log.warning(f"Rejected unsafe regex in {context}: {pattern!r}")
        else:
            log.warning(f"Invalid regex in {context}: {pattern!r} ({reason})")
    return compiled


def _search(compiled, value: str, log: logging.Logger, context: str) -> bool:
    if len(value) > MAX_INPUT_LENGTH:
        log.warning(f"Skipped regex in {context}: input longer than {MAX_INPUT_LENGTH} characters")
        return False
    try:
        return compiled.search(value, timeout=MATCH_TIMEOUT) is not None
    except TimeoutError:
        log.warning(f"Regex in {context} timed out after {MATCH_TIMEOUT}s: {compiled.pattern!r}")
        return False


def evaluate_regex_safely(
    pattern: str,
    value: str,
    log: Optional[logging.Logger] = None,
    context: str = "regex",
) -> bool:
    """
    Search value with pattern, refusing unsafe or invalid patterns.

    An empty pattern matches everything. Matching is a case sensitive search.
    """
    log = log or logger
    compiled = _checked(pattern, log, context)
    if compiled is None:
        return False
    return _search(compiled, value, log, context)


def evaluate_regex_safely_multiple(
    pattern: str,
    values: Iterable[str],
    log: Optional[logging.Logger] = None,
    context: str = "regex",
) -> bool:
    """True if any value matches; the pattern is validated once"""
    log = log or logger
    compiled = _checked(pattern, log, context)
    if compiled is None:
        return False
    return any(_search(compiled, value, log, context) for value in values)
