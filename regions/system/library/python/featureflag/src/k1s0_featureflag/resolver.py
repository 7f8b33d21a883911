"""カタログからアクティブなモディフィケーションを解決する"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

import structlog

from .allocation import AllocationEngine, Liveness
from .models import Campaign, Catalog, Modification, VariationGroup
from .targeting import evaluate

logger = structlog.stdlib.get_logger(__name__)


class DecisionMode(StrEnum):
    """決定モード。"""

    # サーバーがターゲティングと割り当てを適用済み
    DECISION_API = "DECISION_API"
    # クライアントがターゲティングと割り当てを適用する
    BUCKETING = "BUCKETING"


def _variation_modifications(
    group: VariationGroup, variation_id: str | None
) -> dict[str, Modification]:
    if variation_id is None:
        return {}
    variation = group.variations.get(variation_id)
    if variation is None:
        return {}
    return variation.modifications


def _resolve_pre_resolved(campaign: Campaign) -> dict[str, Modification]:
    result: dict[str, Modification] = {}
    for group in campaign.variation_groups.values():
        if group.resolved_variation_id is None:
            logger.debug("variation group is not resolved", variation_group_id=group.id)
            continue
        result.update(_variation_modifications(group, group.resolved_variation_id))
    return result


async def _resolve_bucketing(
    campaign: Campaign,
    context: Mapping[str, Any],
    engine: AllocationEngine,
    visitor_id: str,
    custom_visitor_id: str,
    draw: int,
    is_current: Liveness | None,
) -> dict[str, Modification]:
    for group in campaign.variation_groups.values():
        if not evaluate(group.targeting, context):
            continue
        # 最初にターゲティングが成立したグループだけが採用される
        variation_id = await engine.resolve(
            group, visitor_id, custom_visitor_id, draw, is_current=is_current
        )
        return dict(_variation_modifications(group, variation_id))
    return {}


async def resolve_all(
    catalog: Catalog,
    context: Mapping[str, Any],
    mode: DecisionMode,
    *,
    engine: AllocationEngine,
    visitor_id: str,
    custom_visitor_id: str = "",
    draw: int,
    campaign_id: str | None = None,
    is_current: Liveness | None = None,
) -> dict[str, Modification]:
    """キャンペーン順・グループ順にモディフィケーションをマージする。

    Args:
        catalog: 解析済みカタログ
        context: 訪問者コンテキストのスナップショット
        mode: 決定モード
        engine: 割り当てエンジン（BUCKETING モードでのみ使用）
        visitor_id: 訪問者 ID
        custom_visitor_id: カスタム訪問者 ID
        draw: 同期パスで 1 度だけ引いた割り当て値
        campaign_id: 指定した場合はそのキャンペーンだけを解決する
        is_current: 割り当てを記録してよいかを返す（BUCKETING モードのみ）

    Returns:
        フラグキー -> Modification。後のキャンペーンが同じキーを上書きする。
    """
    result: dict[str, Modification] = {}
    for campaign in catalog.campaigns.values():
        if campaign_id is not None and campaign.id != campaign_id:
            continue
        try:
            if mode == DecisionMode.DECISION_API:
                modifications = _resolve_pre_resolved(campaign)
            else:
                modifications = await _resolve_bucketing(
                    campaign, context, engine, visitor_id, custom_visitor_id, draw, is_current
                )
        except Exception as e:
            logger.error("campaign resolution failed", campaign_id=campaign.id, error=str(e))
            continue
        result.update(modifications)
    return result
