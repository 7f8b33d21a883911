"""キャンペーンカタログの解析

各階層は解析できたノードか None を返し、上位は None を読み飛ばす。
不正なエンティティは警告ログを出して除外し、兄弟要素の解析は継続する。
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from .models import (
    DEFAULT_ALLOCATION,
    Campaign,
    Catalog,
    Modification,
    Targeting,
    TargetingGroups,
    TargetingList,
    Variation,
    VariationGroup,
)
from .values import FlagValue

logger = structlog.stdlib.get_logger(__name__)

_MALFORMED = (KeyError, TypeError, ValueError, AttributeError)


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str) or not value:
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _as_list(value: Any, name: str) -> list[Any]:
    if not isinstance(value, list):
        raise TypeError(f"{name} must be an array")
    return value


def parse_targeting(data: dict[str, Any]) -> Targeting | None:
    try:
        return Targeting(
            key=_require_str(data, "key"),
            operator=_require_str(data, "operator"),
            value=data["value"],
        )
    except _MALFORMED as e:
        logger.warning("targeting parsing error", error=str(e))
        return None


def parse_targeting_list(data: dict[str, Any]) -> TargetingList | None:
    try:
        items = _as_list(data["targetings"], "targetings")
    except _MALFORMED as e:
        logger.warning("targeting list parsing error", error=str(e))
        return None
    targetings = [t for t in (parse_targeting(item) for item in items) if t is not None]
    if not targetings:
        logger.warning("targeting list has no valid targeting")
        return None
    return TargetingList(targetings=targetings)


def parse_targeting_groups(data: Any) -> TargetingGroups | None:
    """targetingGroups 配列を解析する。"""
    try:
        items = _as_list(data, "targetingGroups")
    except _MALFORMED as e:
        logger.warning("targeting groups parsing error", error=str(e))
        return None
    lists = [tl for tl in (parse_targeting_list(item) for item in items) if tl is not None]
    return TargetingGroups(targeting_lists=lists)


def parse_modifications(
    variation_group_id: str, variation_id: str, data: Any
) -> dict[str, Modification]:
    """modifications ブロックを解析する。

    boolean/number/string 以外の値は除外する。ブロック自体が不正な場合は空。
    """
    try:
        values = data["value"]
        if not isinstance(values, dict):
            raise TypeError("modifications.value must be an object")
    except _MALFORMED as e:
        logger.warning(
            "modifications parsing error",
            variation_group_id=variation_group_id,
            variation_id=variation_id,
            error=str(e),
        )
        return {}

    result: dict[str, Modification] = {}
    for key, raw in values.items():
        value = FlagValue.of(raw)
        if value is None:
            logger.warning(
                "modification value is not a NUMBER, BOOLEAN or STRING",
                variation_group_id=variation_group_id,
                variation_id=variation_id,
                key=key,
            )
            continue
        result[key] = Modification(
            key=key,
            variation_group_id=variation_group_id,
            variation_id=variation_id,
            value=value,
        )
    return result


def parse_variation(
    group_id: str, data: dict[str, Any], selected: bool = False
) -> Variation | None:
    try:
        variation_id = _require_str(data, "id")
        allocation = data.get("allocation", DEFAULT_ALLOCATION)
        if isinstance(allocation, bool) or not isinstance(allocation, (int, float)):
            raise TypeError("allocation must be a number")
        if not 0 <= allocation <= DEFAULT_ALLOCATION:
            raise ValueError(f"allocation out of range: {allocation}")
        if allocation != int(allocation):
            raise ValueError(f"allocation must be an integer: {allocation}")
    except _MALFORMED as e:
        logger.warning("variation parsing error", variation_group_id=group_id, error=str(e))
        return None
    return Variation(
        group_id=group_id,
        id=variation_id,
        modifications=parse_modifications(group_id, variation_id, data.get("modifications")),
        allocation=int(allocation),
        selected=selected,
    )


def parse_variation_group(data: dict[str, Any]) -> VariationGroup | None:
    """バリエーショングループを解析する。

    "variation" があればサーバー割り当て済み、"variations" があればクライアント割り当て。
    """
    try:
        group_id = _require_str(data, "id")
        targeting = data.get("targeting")
        targeting_data = targeting.get("targetingGroups") if targeting is not None else None
    except _MALFORMED as e:
        logger.warning("variation group parsing error", error=str(e))
        return None

    variations: dict[str, Variation] = {}
    resolved_variation_id: str | None = None
    if data.get("variation") is not None:
        variation = parse_variation(group_id, data["variation"], selected=True)
        if variation is None:
            return None
        variations[variation.id] = variation
        resolved_variation_id = variation.id
    else:
        try:
            items = _as_list(data.get("variations", []), "variations")
        except _MALFORMED as e:
            logger.warning(
                "variation group parsing error", variation_group_id=group_id, error=str(e)
            )
            return None
        for item in items:
            variation = parse_variation(group_id, item)
            if variation is not None:
                variations[variation.id] = variation

    return VariationGroup(
        id=group_id,
        variations=variations,
        targeting=parse_targeting_groups(targeting_data) if targeting_data is not None else None,
        resolved_variation_id=resolved_variation_id,
    )


def parse_campaign(data: dict[str, Any]) -> Campaign | None:
    """キャンペーンを解析する。

    variationGroups がない場合はキャンペーン自体を 1 つのグループとして扱い、
    variationGroupId があればそれをグループ ID にする。
    """
    try:
        campaign_id = _require_str(data, "id")
        groups_data = data.get("variationGroups")
        if groups_data is not None:
            items = _as_list(groups_data, "variationGroups")
        else:
            items = [{**data, "id": data.get("variationGroupId", campaign_id)}]
    except _MALFORMED as e:
        logger.warning("campaign parsing error", error=str(e))
        return None

    groups: dict[str, VariationGroup] = {}
    for item in items:
        group = parse_variation_group(item)
        if group is not None:
            groups[group.id] = group
    return Campaign(id=campaign_id, variation_groups=groups)


def parse(payload: Any) -> Catalog:
    """ペイロードからカタログを構築する。

    キャンペーン配列、または {"campaigns": [...], "panic": bool} 形式を受け付ける。
    有効なキャンペーンが 0 件でも空のカタログを返す。
    """
    panic = False
    items: Any = payload
    if isinstance(payload, dict):
        panic = payload.get("panic") is True
        items = payload.get("campaigns", [])
    if not isinstance(items, list):
        logger.warning("catalog payload has no campaign array", payload_type=type(items).__name__)
        return Catalog(panic=panic)

    campaigns: dict[str, Campaign] = {}
    for item in items:
        campaign = parse_campaign(item)
        if campaign is not None:
            campaigns[campaign.id] = campaign
    logger.debug("catalog parsed", campaigns=len(campaigns), panic=panic)
    return Catalog(campaigns=campaigns, panic=panic)


def parse_json(text: str | bytes) -> Catalog:
    """JSON 文字列を解析してカタログを返す。デコードできない場合は空のカタログ。"""
    try:
        payload = json.loads(text)
    except ValueError as e:
        logger.error("catalog payload is not valid JSON", error=str(e))
        return Catalog()
    return parse(payload)
