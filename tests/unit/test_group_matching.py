from __future__ import annotations

import pytest

from quotahub.core.quotas.matching import (
    GlobRule,
    NeverRule,
    RegexRule,
    TokenRule,
    compile_rule,
    compile_rules,
    glob_to_regex,
    tokenize,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("pattern", "rule_type"),
    [
        ("codex-*", GlobRule),
        ("gpt-?", GlobRule),
        ("^codex", RegexRule),
        ("flash|pro", RegexRule),
        ("gemini.+", RegexRule),
        ("flash", TokenRule),
        ("gem[ini", NeverRule),
    ],
)
def test_compile_rule_picks_variant(pattern: str, rule_type: type) -> None:
    assert isinstance(compile_rule(pattern), rule_type)


def test_glob_to_regex_escapes_other_characters() -> None:
    assert glob_to_regex("a.b*c?") == r"a\.b.*c."


def test_glob_rule_matches_case_insensitively() -> None:
    rule = compile_rule("CODEX-*")

    assert rule.matches("codex-primary Codex")
    assert not rule.matches("gemini-pro Antigravity")


def test_glob_question_mark_matches_single_character() -> None:
    rule = compile_rule("o?-mini")

    assert rule.matches("o3-mini OpenAI")
    assert not rule.matches("o-mini OpenAI")


def test_regex_rule_matches() -> None:
    rule = compile_rule("^ag-(flash|pro)")

    assert rule.matches("ag-flash Antigravity")
    assert not rule.matches("codex-primary Codex")


def test_invalid_regex_never_matches() -> None:
    rule = compile_rule("gem[ini")

    assert not rule.matches("gem[ini")
    assert not rule.matches("gemini Antigravity")


def test_token_rule_matches_whole_token_then_substring() -> None:
    rule = compile_rule("Flash")

    assert rule.matches("ag-flash Antigravity")
    assert rule.matches("flashlight Tools")
    assert not rule.matches("ag-pro Antigravity")


def test_tokenize_splits_on_non_alphanumerics() -> None:
    assert tokenize("Gemini-2.5 Flash_Lite") == ["gemini", "2", "5", "flash", "lite"]


def test_compile_rules_skips_blank_patterns() -> None:
    rules = compile_rules(["flash", "  ", "pro"])

    assert [rule.pattern for rule in rules] == ["flash", "pro"]
