"""フラグ値・コンテキスト値のタグ付きユニオン"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

Scalar = bool | int | float | str


class ValueKind(StrEnum):
    """値の種別。"""

    BOOLEAN = "BOOLEAN"
    NUMBER = "NUMBER"
    STRING = "STRING"


def kind_of(raw: Any) -> ValueKind | None:
    """Python 値の種別を返す。対応外の型は None。

    bool は int のサブクラスなので数値より先に判定する。
    """
    if isinstance(raw, bool):
        return ValueKind.BOOLEAN
    if isinstance(raw, (int, float)):
        return ValueKind.NUMBER
    if isinstance(raw, str):
        return ValueKind.STRING
    return None


@dataclass(frozen=True)
class FlagValue:
    """種別付きのフラグ値。"""

    kind: ValueKind
    raw: Scalar

    @classmethod
    def of(cls, raw: Any) -> FlagValue | None:
        """raw を分類して FlagValue を返す。boolean/number/string 以外は None。"""
        kind = kind_of(raw)
        if kind is None:
            return None
        return cls(kind=kind, raw=raw)

    def matches(self, other: FlagValue) -> bool:
        """種別を考慮した等価判定。"""
        return self.kind == other.kind and self.raw == other.raw
