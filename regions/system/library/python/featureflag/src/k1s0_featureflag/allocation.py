"""バリエーション割り当てエンジン"""

from __future__ import annotations

import random
from collections.abc import Callable

import structlog

from .models import VariationGroup
from .store import AllocationStore

logger = structlog.stdlib.get_logger(__name__)

ALLOCATION_MIN = 1
ALLOCATION_MAX = 100

AllocationDraw = Callable[[], int]

# 同期パスがまだ現在の訪問者に対するものかを返す
Liveness = Callable[[], bool]


def draw_allocation() -> int:
    """[ALLOCATION_MIN, ALLOCATION_MAX] の一様乱数を返す。同期 1 回につき 1 度だけ引く。"""
    return random.randint(ALLOCATION_MIN, ALLOCATION_MAX)


def select_by_weight(group: VariationGroup, draw: int) -> str | None:
    """累積割り当てが draw 以上になった最初のバリエーションを返す。

    重みの合計が draw に届かなければ None。
    """
    cumulative = 0
    for variation in group.variations.values():
        cumulative += variation.allocation
        if cumulative >= draw:
            return variation.id
    return None


class AllocationEngine:
    """バリエーショングループごとに 1 つのバリエーションを選ぶ。"""

    def __init__(self, store: AllocationStore) -> None:
        self._store = store

    async def resolve(
        self,
        group: VariationGroup,
        visitor_id: str,
        custom_visitor_id: str,
        draw: int,
        is_current: Liveness | None = None,
    ) -> str | None:
        """グループのバリエーション ID を決定する。

        Args:
            group: 対象のバリエーショングループ
            visitor_id: 訪問者 ID
            custom_visitor_id: カスタム訪問者 ID
            draw: 同期パスで 1 度だけ引いた割り当て値
            is_current: False を返した場合は割り当てを記録しない

        Returns:
            選ばれたバリエーション ID。該当なしは None。
        """
        if group.resolved_variation_id is not None:
            return group.resolved_variation_id

        try:
            stored = await self._store.get(visitor_id, custom_visitor_id, group.id)
        except Exception as e:
            logger.error("allocation store read failed", variation_group_id=group.id, error=str(e))
            return None
        if stored is not None and stored in group.variations:
            logger.debug("sticky variation", variation_group_id=group.id, variation_id=stored)
            return stored

        variation_id = select_by_weight(group, draw)
        if variation_id is None:
            logger.debug("no variation allocated", variation_group_id=group.id, allocation=draw)
            return None

        if is_current is not None and not is_current():
            logger.info("stale allocation skipped", variation_group_id=group.id)
            return None
        try:
            await self._store.put(visitor_id, custom_visitor_id, group.id, variation_id)
        except Exception as e:
            logger.error(
                "allocation store write failed", variation_group_id=group.id, error=str(e)
            )
            return None
        if is_current is not None and not is_current():
            # 書き込み中に訪問者が変わった場合は旧訪問者の記録を消し直す
            await self._discard(visitor_id, custom_visitor_id)
            return None
        logger.debug(
            "variation selected",
            variation_group_id=group.id,
            variation_id=variation_id,
            allocation=draw,
        )
        return variation_id

    async def _discard(self, visitor_id: str, custom_visitor_id: str) -> None:
        try:
            await self._store.clear(visitor_id, custom_visitor_id)
        except Exception as e:
            logger.error("allocation store clear failed", visitor_id=visitor_id, error=str(e))
