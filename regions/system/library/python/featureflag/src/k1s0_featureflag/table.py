"""アクティブモディフィケーションテーブル

書き込みはスナップショットの参照差し替えのみで行う。読み込み側は
ロックを取らず、差し替え前か差し替え後のどちらか一方だけを観測する。
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import TypeVar

import structlog

from .models import Modification
from .values import Scalar, ValueKind, kind_of

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T", bool, int, float, str)

ActivationHook = Callable[[Modification], None]

_EMPTY: Mapping[str, Modification] = MappingProxyType({})


class PanicSwitch:
    """全体の縮退スイッチ。ロックなしで読まれる。"""

    def __init__(self) -> None:
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set(self, enabled: bool) -> None:
        if enabled != self._enabled:
            logger.warning("panic mode changed", enabled=enabled)
        self._enabled = enabled


class ActiveModificationTable:
    """フラグキー -> Modification の読み取り専用スナップショットを保持する。"""

    def __init__(
        self,
        panic: PanicSwitch | None = None,
        on_activate: ActivationHook | None = None,
    ) -> None:
        self._panic = panic or PanicSwitch()
        self._on_activate = on_activate
        self._snapshot: Mapping[str, Modification] = _EMPTY
        self._write_lock = threading.Lock()

    def snapshot(self) -> Mapping[str, Modification]:
        """現在のスナップショットを返す。"""
        return self._snapshot

    def replace(self, modifications: Mapping[str, Modification]) -> bool:
        """テーブル全体を差し替える。パニック中は何もしない。"""
        if self._panic.enabled:
            return False
        fresh = MappingProxyType(dict(modifications))
        with self._write_lock:
            self._snapshot = fresh
        return True

    def clear(self) -> None:
        with self._write_lock:
            self._snapshot = _EMPTY

    def get_modification_info(self, key: str) -> Modification | None:
        if self._panic.enabled:
            return None
        return self._snapshot.get(key)

    def _lookup(self, key: str, kind: ValueKind, activate: bool) -> Scalar | None:
        if self._panic.enabled:
            return None
        modification = self._snapshot.get(key)
        if modification is None:
            logger.debug("modification not found", key=key)
            return None
        if modification.value.kind != kind:
            logger.warning(
                "modification type mismatch",
                key=key,
                expected=str(kind),
                actual=str(modification.value.kind),
            )
            return None
        if activate:
            self._report(modification)
        return modification.value.raw

    def _report(self, modification: Modification) -> None:
        if self._on_activate is None:
            return
        try:
            self._on_activate(modification)
        except Exception as e:
            logger.error("activation report failed", key=modification.key, error=str(e))

    def get(self, key: str, default: T, activate: bool = False) -> T:
        """key の値を default と同じ種別で返す。見つからない・型不一致は default。"""
        kind = kind_of(default)
        if kind is None:
            logger.warning("unsupported default type", key=key, type=type(default).__name__)
            return default
        value = self._lookup(key, kind, activate)
        return default if value is None else value  # type: ignore[return-value]

    def get_bool(self, key: str, default: bool, activate: bool = False) -> bool:
        value = self._lookup(key, ValueKind.BOOLEAN, activate)
        return default if value is None else bool(value)

    def get_number(self, key: str, default: float, activate: bool = False) -> float:
        value = self._lookup(key, ValueKind.NUMBER, activate)
        return default if value is None else value  # type: ignore[return-value]

    def get_string(self, key: str, default: str, activate: bool = False) -> str:
        value = self._lookup(key, ValueKind.STRING, activate)
        return default if value is None else str(value)

    def activate(self, key: str) -> bool:
        """key を生成したバリエーションへの接触を報告する。"""
        if self._panic.enabled:
            return False
        modification = self._snapshot.get(key)
        if modification is None:
            logger.debug("modification not found", key=key)
            return False
        self._report(modification)
        return True
