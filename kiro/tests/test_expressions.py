"""Tests for the expression catalog and name validation."""

import pytest

from kiro.assistant.expressions import (
    EXPRESSION_RULES,
    Expression,
    describe_catalog,
    nearest_expression,
    parse_expression,
)


def test_every_expression_has_a_rule():
    assert set(EXPRESSION_RULES) == set(Expression)


def test_rules_are_read_only():
    with pytest.raises(TypeError):
        EXPRESSION_RULES[Expression.IDLE] = EXPRESSION_RULES[Expression.SAD]


def test_priorities_in_range():
    assert all(1 <= rule.priority <= 10 for rule in EXPRESSION_RULES.values())


def test_keywords_are_distinct():
    for rule in EXPRESSION_RULES.values():
        assert len(rule.keywords) == len(set(rule.keywords))


class TestParseExpression:

    @pytest.mark.parametrize("raw,expected", [
        ("idle", Expression.IDLE),
        ("  Excited ", Expression.EXCITED),
        ("deep-thinking", Expression.DEEP_THINKING),
        ("deep thinking", Expression.DEEP_THINKING),
        ("jatuh_cinta", Expression.SMITTEN),
        ("maaf", Expression.APOLOGETIC),
    ])
    def test_known_names(self, raw, expected):
        assert parse_expression(raw) is expected

    @pytest.mark.parametrize("raw", ["", "happyish", None, 42])
    def test_unknown_names(self, raw):
        assert parse_expression(raw) is None


class TestNearestExpression:

    def test_substring_of_catalog_name(self):
        assert nearest_expression("very_excited_face") is Expression.EXCITED

    def test_alias_substring(self):
        assert nearest_expression("kiro_sedih") is Expression.SAD

    def test_keyword_fallback(self):
        assert nearest_expression("heartbroken-but-hopeful") is not None
        assert nearest_expression("tornado") is Expression.STORMY

    def test_short_fragments_do_not_match_everything(self):
        assert nearest_expression("da") is None

    def test_nothing_close(self):
        assert nearest_expression("zzz") is None
        assert nearest_expression("") is None
        assert nearest_expression(None) is None


def test_describe_catalog_lists_every_expression():
    catalog = describe_catalog()

    for expression in Expression:
        assert f"- {expression.value}:" in catalog
