"""ターゲティング評価のユニットテスト"""

import pytest
from k1s0_featureflag.models import Targeting, TargetingGroups, TargetingList
from k1s0_featureflag.targeting import compare, evaluate, is_targeting_valid


def rule(*lists: list[Targeting]) -> TargetingGroups:
    return TargetingGroups(targeting_lists=[TargetingList(targetings=list(t)) for t in lists])


def test_evaluate_none_rule_tree_is_false() -> None:
    """ルールツリーがない場合は成立しない。"""
    assert evaluate(None, {"a": 1}) is False


def test_evaluate_empty_groups_is_false() -> None:
    """TargetingGroups が空なら成立しない。"""
    assert evaluate(TargetingGroups(), {"a": 1}) is False


def test_evaluate_empty_list_is_false() -> None:
    """空の TargetingList は成立しない。"""
    assert evaluate(TargetingGroups(targeting_lists=[TargetingList()]), {"a": 1}) is False


def test_and_within_list() -> None:
    """リスト内はすべての条件が成立する必要がある。"""
    tree = rule([Targeting("A", "EQUALS", True), Targeting("B", "EQUALS", True)])
    assert evaluate(tree, {"A": True, "B": True}) is True
    assert evaluate(tree, {"A": True, "B": False}) is False
    assert evaluate(tree, {"A": True}) is False


def test_or_across_lists() -> None:
    """いずれかのリストが成立すればよい。"""
    tree = rule([Targeting("A", "EQUALS", True)], [Targeting("B", "EQUALS", True)])
    assert evaluate(tree, {"A": False, "B": True}) is True
    assert evaluate(tree, {"A": True, "B": False}) is True
    assert evaluate(tree, {"A": False, "B": False}) is False


def test_missing_context_key_is_false() -> None:
    """コンテキストにキーがなければ条件は不成立。"""
    assert is_targeting_valid(Targeting("age", "NOT_EQUALS", 3), {}) is False


def test_equals_is_type_aware() -> None:
    """EQUALS は型を区別する。"""
    assert compare("EQUALS", 1, 1) is True
    assert compare("EQUALS", 1, 1.0) is True
    assert compare("EQUALS", True, 1) is False
    assert compare("EQUALS", "1", 1) is False
    assert compare("NOT_EQUALS", "1", 1) is True
    assert compare("NOT_EQUALS", "a", "a") is False


def test_equals_with_multiple_literals() -> None:
    """リテラルが配列の場合はいずれかと一致すれば成立。"""
    assert compare("EQUALS", "fr", ["en", "fr"]) is True
    assert compare("NOT_EQUALS", "de", ["en", "fr"]) is True
    assert compare("NOT_EQUALS", "fr", ["en", "fr"]) is False


@pytest.mark.parametrize(
    ("operator", "left", "right", "expected"),
    [
        ("GREATER_THAN", 5, 3, True),
        ("GREATER_THAN", 3, 3, False),
        ("LOWER_THAN", 2.5, 3, True),
        ("GREATER_THAN_OR_EQUALS", 3, 3, True),
        ("LOWER_THAN_OR_EQUALS", 4, 3, False),
        ("GREATER_THAN", "5", 3, False),
        ("GREATER_THAN", True, False, False),
        ("LOWER_THAN", "abc", "abd", False),
        ("GREATER_THAN", "10", "9", False),
        ("LOWER_THAN_OR_EQUALS", "a", "a", False),
    ],
)
def test_ordering_operators(operator: str, left: object, right: object, expected: bool) -> None:
    """大小比較は数値同士のみ。文字列は辞書順でも比較しない。"""
    assert compare(operator, left, right) is expected


def test_contains_substring_and_membership() -> None:
    """CONTAINS は文字列の部分一致と複数値の包含。"""
    assert compare("CONTAINS", "premium-user", "premium") is True
    assert compare("CONTAINS", ["a", "b"], "b") is True
    assert compare("CONTAINS", "hello", ["xyz", "ell"]) is True
    assert compare("CONTAINS", 42, "4") is False
    assert compare("NOT_CONTAINS", "premium-user", "free") is True
    assert compare("NOT_CONTAINS", "premium-user", "premium") is False
    assert compare("NOT_CONTAINS", 42, "4") is False


def test_starts_and_ends_with() -> None:
    """STARTS_WITH / ENDS_WITH は文字列のみ。"""
    assert compare("STARTS_WITH", "flagship", "flag") is True
    assert compare("ENDS_WITH", "flagship", "ship") is True
    assert compare("STARTS_WITH", 123, "1") is False
    assert compare("ENDS_WITH", "flagship", "flag") is False


def test_unknown_operator_is_false() -> None:
    """未知の演算子は例外ではなく不成立。"""
    assert compare("REGEX_MATCHES", "a", "a") is False
    tree = rule([Targeting("a", "REGEX_MATCHES", "a")])
    assert evaluate(tree, {"a": "a"}) is False
