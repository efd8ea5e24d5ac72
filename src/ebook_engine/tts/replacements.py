"""User-defined text substitutions applied before speech synthesis.

A rule set is a flat ``pattern -> replacement`` mapping. The key prefix
selects how a rule is interpreted:

- ``<token>``: system token, exact substring replacement, applied first
- ``#...``: disabled, never applied
- ``*...``: the rest of the key is a regular expression
- anything else: literal text, matched case-insensitively; the replacement
  takes the letter case of the matched text

Rule sets are exchanged as JSON objects. ``load_rules`` is the gate every
stored rule set passes through: anything that is not a string-to-string
object is replaced by ``DEFAULT_RULES``.
"""

import logging
import re
from collections.abc import Mapping

from pydantic import TypeAdapter, ValidationError

from ebook_engine.errors import InvalidRuleSetError

log = logging.getLogger(__name__)

RuleSet = dict[str, str]

DEFAULT_RULES: RuleSet = {
    r"*\bMr\.": "Mister",
    r"*\bMrs\.": "Missus",
    r"*\bDr\.": "Doctor",
    r"*\bSt\.": "Saint",
    "*\u2026": "...",
    "#*\\be\\.g\\.": "for example",
    "#*\\bi\\.e\\.": "that is",
}

_RULES_ADAPTER = TypeAdapter(RuleSet)
_GROUP_REFERENCE = re.compile(r"\$(\d+)")


def is_system_token(key: str) -> bool:
    return len(key) > 1 and key.startswith("<") and key.endswith(">")


def is_disabled(key: str) -> bool:
    return key.startswith("#")


def match_case(original: str, replacement: str) -> str:
    """Give ``replacement`` the letter case of ``original``.

    ALL CAPS stays upper, lower case is left alone and a capitalised word
    capitalises the replacement. Mixed case leaves the replacement unchanged.
    """
    letters = [c for c in original if c.isalpha()]
    if not replacement or not letters:
        return replacement
    if all(c.isupper() for c in letters):
        return replacement.upper()
    if all(c.islower() for c in letters):
        return replacement
    if letters[0].isupper() and all(c.islower() for c in letters[1:]):
        return replacement[:1].upper() + replacement[1:]
    return replacement


def convert_group_references(replacement: str) -> str:
    """``$1`` style group references to Python's ``\\g<1>``."""
    return _GROUP_REFERENCE.sub(r"\\g<\1>", replacement)


def parse_rules(data: str | bytes | Mapping) -> RuleSet:
    """Strictly validate a rule set.

    Raises:
        InvalidRuleSetError: If the data is not a flat string-to-string object
    """
    try:
        if isinstance(data, (str, bytes, bytearray)):
            return _RULES_ADAPTER.validate_json(data)
        return _RULES_ADAPTER.validate_python(dict(data))
    except (ValidationError, TypeError, ValueError) as e:
        raise InvalidRuleSetError(f"Invalid replacement rules: {e}") from e


def is_valid_rules(data: str | bytes | Mapping) -> bool:
    try:
        parse_rules(data)
    except InvalidRuleSetError:
        return False
    return True


def load_rules(data: str | bytes | Mapping | None) -> RuleSet:
    """Validated rule set, or a copy of ``DEFAULT_RULES`` if ``data`` is invalid."""
    if data is None:
        return dict(DEFAULT_RULES)
    try:
        return parse_rules(data)
    except InvalidRuleSetError as e:
        log.warning(f"{e}; resetting to default rules")
        return dict(DEFAULT_RULES)


def dump_rules(rules: Mapping[str, str]) -> str:
    return _RULES_ADAPTER.dump_json(dict(rules)).decode("utf-8")


def add_replacement(rules: Mapping[str, str], key: str, value: str) -> RuleSet:
    """Copy of ``rules`` with ``key`` added or updated."""
    updated = dict(rules)
    updated[key] = value
    return updated


def remove_replacement(rules: Mapping[str, str], key: str) -> RuleSet:
    """Copy of ``rules`` without ``key``; unknown keys are ignored."""
    return {k: v for k, v in rules.items() if k != key}


def list_replacements(rules: Mapping[str, str]) -> list[tuple[str, str]]:
    """(pattern, replacement) pairs sorted by pattern, for display."""
    return sorted(rules.items(), key=lambda item: item[0])


class ReplacementProcessor:
    """Compiled form of a rule set.

    Regex rules that fail to compile are logged and dropped; the rest of the
    set still applies.
    """

    def __init__(self, rules: Mapping[str, str]):
        self.system: list[tuple[str, str]] = []
        self.rules: list[tuple[re.Pattern, str, bool]] = []  # (pattern, replacement, is_literal)

        for key, value in rules.items():
            if not key or is_disabled(key):
                continue
            if is_system_token(key):
                self.system.append((key, value))
            elif key.startswith("*"):
                try:
                    pattern = re.compile(key[1:], re.IGNORECASE | re.MULTILINE)
                except re.error as e:
                    log.warning(f"Invalid regex pattern {key[1:]!r}: {e}")
                    continue
                self.rules.append((pattern, convert_group_references(value), False))
            else:
                self.rules.append((re.compile(re.escape(key), re.IGNORECASE), value, True))

    def apply(self, text: str) -> str:
        """Apply system tokens, then every other rule in rule set order."""
        if not text:
            return text

        for token, value in self.system:
            text = text.replace(token, value)

        for pattern, value, is_literal in self.rules:
            if is_literal:
                text = pattern.sub(lambda m, value=value: match_case(m.group(0), value), text)
                continue
            try:
                text = pattern.sub(value, text)
            except (re.error, IndexError) as e:
                log.warning(f"Cannot apply replacement for {pattern.pattern!r}: {e}")
        return text


def apply_replacements(text: str, rules: Mapping[str, str], enabled: bool = True) -> str:
    """Apply a rule set to ``text``; a disabled processor returns it unchanged."""
    if not enabled or not text or not rules:
        return text
    return ReplacementProcessor(rules).apply(text)
