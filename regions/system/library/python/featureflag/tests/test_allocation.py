"""AllocationEngine のユニットテスト"""

from unittest.mock import AsyncMock

from k1s0_featureflag.allocation import (
    ALLOCATION_MAX,
    ALLOCATION_MIN,
    AllocationEngine,
    draw_allocation,
    select_by_weight,
)
from k1s0_featureflag.memory import InMemoryAllocationStore
from k1s0_featureflag.models import Variation, VariationGroup


def make_group(weights: list[int], group_id: str = "g1") -> VariationGroup:
    variations = {
        f"v{i}": Variation(group_id=group_id, id=f"v{i}", allocation=w)
        for i, w in enumerate(weights)
    }
    return VariationGroup(id=group_id, variations=variations)


def test_select_by_weight_is_deterministic_for_a_draw() -> None:
    """固定の draw に対して累積割り当てで選ばれる。"""
    group = make_group([30, 70])
    assert select_by_weight(group, 25) == "v0"
    assert select_by_weight(group, 30) == "v0"
    assert select_by_weight(group, 31) == "v1"
    assert select_by_weight(group, 95) == "v1"


def test_select_by_weight_past_last_threshold_is_none() -> None:
    """重みの合計を超える draw はどのバリエーションにも割り当てない。"""
    assert select_by_weight(make_group([30, 30]), 80) is None
    assert select_by_weight(make_group([]), 1) is None


def test_draw_allocation_range() -> None:
    """draw は固定範囲内。"""
    for _ in range(200):
        assert ALLOCATION_MIN <= draw_allocation() <= ALLOCATION_MAX


async def test_pre_resolved_group_never_touches_store() -> None:
    """サーバー割り当て済みのグループはストアを参照しない。"""
    store = AsyncMock()
    engine = AllocationEngine(store)
    group = VariationGroup(
        id="g1",
        variations={"v-a": Variation(group_id="g1", id="v-a", selected=True)},
        resolved_variation_id="v-a",
    )
    assert await engine.resolve(group, "visitor", "", 99) == "v-a"
    store.get.assert_not_called()
    store.put.assert_not_called()


async def test_allocation_is_persisted() -> None:
    """割り当て結果はストアに記録される。"""
    store = InMemoryAllocationStore()
    engine = AllocationEngine(store)
    assert await engine.resolve(make_group([30, 70]), "visitor", "custom", 25) == "v0"
    assert store.all_records() == {("visitor", "custom", "g1"): "v0"}


async def test_stored_allocation_is_sticky() -> None:
    """記録済みの割り当ては新しい draw より優先される。"""
    store = InMemoryAllocationStore()
    engine = AllocationEngine(store)
    group = make_group([50, 50])
    assert await engine.resolve(group, "visitor", "", 10) == "v0"
    for draw in (60, 90, 100):
        assert await engine.resolve(group, "visitor", "", draw) == "v0"
    # 別の訪問者は独立して割り当てられる
    assert await engine.resolve(group, "other", "", 90) == "v1"


async def test_stale_record_is_reallocated() -> None:
    """記録済みのバリエーションが存在しなければ再割り当てする。"""
    store = InMemoryAllocationStore()
    await store.put("visitor", "", "g1", "removed")
    engine = AllocationEngine(store)
    assert await engine.resolve(make_group([30, 70]), "visitor", "", 95) == "v1"
    assert await store.get("visitor", "", "g1") == "v1"


async def test_no_allocation_is_not_persisted() -> None:
    """割り当てがない場合は記録しない。"""
    store = InMemoryAllocationStore()
    engine = AllocationEngine(store)
    assert await engine.resolve(make_group([30, 30]), "visitor", "", 80) is None
    assert store.all_records() == {}


async def test_store_failure_degrades_to_none() -> None:
    """ストアの失敗は None に縮退する。"""
    store = AsyncMock()
    store.get.side_effect = OSError("disk error")
    engine = AllocationEngine(store)
    assert await engine.resolve(make_group([100]), "visitor", "", 1) is None


async def test_allocation_for_superseded_visitor_is_not_persisted() -> None:
    """訪問者が既に変わっている場合は割り当てを記録しない。"""
    store = InMemoryAllocationStore()
    engine = AllocationEngine(store)
    result = await engine.resolve(make_group([100]), "visitor", "", 50, is_current=lambda: False)
    assert result is None
    assert store.all_records() == {}


async def test_visitor_change_during_write_clears_record() -> None:
    """書き込み中に訪問者が変わった場合は旧訪問者の記録を消し直す。"""
    store = InMemoryAllocationStore()
    current = True
    original_put = store.put

    async def put_then_switch(*args: str) -> None:
        nonlocal current
        await original_put(*args)
        current = False

    store.put = put_then_switch  # type: ignore[method-assign]
    engine = AllocationEngine(store)
    result = await engine.resolve(make_group([100]), "visitor", "", 50, is_current=lambda: current)
    assert result is None
    assert store.all_records() == {}
