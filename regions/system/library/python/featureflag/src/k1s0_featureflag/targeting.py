"""ターゲティングルールの評価"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

import structlog

from .models import Targeting, TargetingGroups, TargetingList
from .values import FlagValue, ValueKind, kind_of

logger = structlog.stdlib.get_logger(__name__)


class TargetingOperator(StrEnum):
    """ターゲティング演算子（ワイヤ上の名前）。"""

    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LOWER_THAN = "LOWER_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    LOWER_THAN_OR_EQUALS = "LOWER_THAN_OR_EQUALS"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"


def _is_multi(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _equals(left: Any, right: Any) -> bool:
    left_value = FlagValue.of(left)
    right_value = FlagValue.of(right)
    if left_value is None or right_value is None:
        return False
    return left_value.matches(right_value)


def _ordered(left: Any, right: Any) -> tuple[Any, Any] | None:
    """大小比較可能なペアを返す。数値同士のみ。"""
    if kind_of(left) != ValueKind.NUMBER or kind_of(right) != ValueKind.NUMBER:
        return None
    return left, right


def _contains(container: Any, item: Any) -> bool | None:
    """包含判定。比較不能な組み合わせは None。"""
    if _is_multi(container):
        return any(_equals(element, item) for element in container)
    if _is_multi(item):
        # 複数値のリテラルはいずれかを含めば成立
        results = [_contains(container, element) for element in item]
        if all(r is None for r in results):
            return None
        return any(r for r in results)
    if isinstance(container, str) and isinstance(item, str):
        return item in container
    return None


def compare(operator: str, context_value: Any, literal: Any) -> bool:
    """context_value と literal を operator で比較する。

    未知の演算子、型の合わない比較はいずれも False。
    """
    try:
        op = TargetingOperator(operator)
    except ValueError:
        logger.debug("unknown targeting operator", operator=operator)
        return False

    if op == TargetingOperator.EQUALS:
        if _is_multi(literal):
            return any(_equals(context_value, v) for v in literal)
        return _equals(context_value, literal)
    if op == TargetingOperator.NOT_EQUALS:
        if _is_multi(literal):
            return not any(_equals(context_value, v) for v in literal)
        return kind_of(context_value) is not None and not _equals(context_value, literal)
    if op in (
        TargetingOperator.GREATER_THAN,
        TargetingOperator.LOWER_THAN,
        TargetingOperator.GREATER_THAN_OR_EQUALS,
        TargetingOperator.LOWER_THAN_OR_EQUALS,
    ):
        pair = _ordered(context_value, literal)
        if pair is None:
            return False
        left, right = pair
        if op == TargetingOperator.GREATER_THAN:
            return left > right
        if op == TargetingOperator.LOWER_THAN:
            return left < right
        if op == TargetingOperator.GREATER_THAN_OR_EQUALS:
            return left >= right
        return left <= right
    if op == TargetingOperator.CONTAINS:
        return _contains(context_value, literal) is True
    if op == TargetingOperator.NOT_CONTAINS:
        return _contains(context_value, literal) is False
    if not (isinstance(context_value, str) and isinstance(literal, str)):
        return False
    if op == TargetingOperator.STARTS_WITH:
        return context_value.startswith(literal)
    return context_value.endswith(literal)


def is_targeting_valid(targeting: Targeting, context: Mapping[str, Any]) -> bool:
    """単一条件の評価。コンテキストにキーがなければ False。"""
    if targeting.key not in context:
        return False
    return compare(targeting.operator, context[targeting.key], targeting.value)


def is_list_valid(targeting_list: TargetingList, context: Mapping[str, Any]) -> bool:
    """TargetingList の評価（AND）。空のリストは成立しない。"""
    if not targeting_list.targetings:
        return False
    return all(is_targeting_valid(t, context) for t in targeting_list.targetings)


def evaluate(rule_tree: TargetingGroups | None, context: Mapping[str, Any]) -> bool:
    """ルールツリー全体の評価（OR）。ルールがなければ False。"""
    if rule_tree is None:
        return False
    return any(is_list_valid(tl, context) for tl in rule_tree.targeting_lists)
