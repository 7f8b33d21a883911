"""featureflag データモデル"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .values import FlagValue

DEFAULT_ALLOCATION = 100


@dataclass(frozen=True)
class Targeting:
    """単一のターゲティング条件（コンテキストキー・演算子・リテラル）。"""

    key: str
    operator: str
    value: Any


@dataclass(frozen=True)
class TargetingList:
    """AND 結合されるターゲティング条件の列。"""

    targetings: list[Targeting] = field(default_factory=list)


@dataclass(frozen=True)
class TargetingGroups:
    """OR 結合される TargetingList の集合。"""

    targeting_lists: list[TargetingList] = field(default_factory=list)


@dataclass(frozen=True)
class Modification:
    """フラグキーと値、およびそれを生成したバリエーション。"""

    key: str
    variation_group_id: str
    variation_id: str
    value: FlagValue

    @property
    def raw(self) -> Any:
        return self.value.raw


@dataclass(frozen=True)
class Variation:
    """バリエーショングループ内の 1 アーム。"""

    group_id: str
    id: str
    modifications: dict[str, Modification] = field(default_factory=dict)
    allocation: int = DEFAULT_ALLOCATION
    selected: bool = False


@dataclass(frozen=True)
class VariationGroup:
    """割り当てとターゲティングの単位。

    variations は解析順を保持する。resolved_variation_id はサーバー側で
    割り当て済みの場合にのみ設定される。
    """

    id: str
    variations: dict[str, Variation] = field(default_factory=dict)
    targeting: TargetingGroups | None = None
    resolved_variation_id: str | None = None

    @property
    def is_pre_resolved(self) -> bool:
        return self.resolved_variation_id is not None


@dataclass(frozen=True)
class Campaign:
    """キャンペーン。variation_groups はカタログ順。"""

    id: str
    variation_groups: dict[str, VariationGroup] = field(default_factory=dict)


@dataclass(frozen=True)
class Catalog:
    """同期 1 回分のキャンペーンカタログ。"""

    campaigns: dict[str, Campaign] = field(default_factory=dict)
    panic: bool = False

    def __len__(self) -> int:
        return len(self.campaigns)


@dataclass(frozen=True)
class ActivationEvent:
    """訪問者がバリエーションに接触したことを示すイベント。"""

    variation_group_id: str
    variation_id: str
    visitor_id: str = ""
    custom_visitor_id: str = ""

    def to_dict(self, env_id: str) -> dict[str, Any]:
        data: dict[str, Any] = {
            "vid": self.visitor_id,
            "cid": env_id,
            "caid": self.variation_group_id,
            "vaid": self.variation_id,
        }
        if self.custom_visitor_id:
            data["aid"] = self.custom_visitor_id
        return data
