"""訪問者コンテキスト"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any

import structlog

from .values import Scalar, kind_of

logger = structlog.stdlib.get_logger(__name__)

ALL_USERS = "fs_all_users"
CLIENT = "fs_client"
VERSION = "fs_version"
USERS = "fs_users"

# 端末・プラットフォーム属性。周辺システムが load_preset で設定する
DEVICE_CONTEXT_KEYS: frozenset[str] = frozenset(
    {
        "sdk_deviceLanguage",
        "sdk_deviceType",
        "sdk_deviceModel",
        "sdk_city",
        "sdk_region",
        "sdk_country",
        "sdk_lat",
        "sdk_long",
        "sdk_ip",
        "sdk_osName",
        "sdk_osVersionName",
        "sdk_osVersionCode",
        "sdk_carrierName",
        "sdk_internetConnection",
        "sdk_versionName",
        "sdk_versionCode",
        "sdk_fsVersion",
        "sdk_interfaceName",
    }
)

RESERVED_CONTEXT_KEYS: frozenset[str] = DEVICE_CONTEXT_KEYS | {ALL_USERS, CLIENT, VERSION, USERS}


class VisitorContext:
    """キー -> boolean/number/string の訪問者コンテキスト。

    予約キーはホストからの update では上書きできない。
    """

    def __init__(self) -> None:
        self._values: dict[str, Scalar] = {}
        self._lock = threading.Lock()

    def update(self, key: str, value: Any) -> bool:
        if key in RESERVED_CONTEXT_KEYS:
            logger.error("context key is reserved and cannot be modified", key=key)
            return False
        if kind_of(value) is None:
            logger.error(
                "context value is not a NUMBER, BOOLEAN or STRING",
                key=key,
                type=type(value).__name__,
            )
            return False
        with self._lock:
            self._values[key] = value
        return True

    def update_all(self, values: Mapping[str, Any]) -> int:
        """複数の値を更新し、受け付けた件数を返す。"""
        return sum(1 for key, value in values.items() if self.update(key, value))

    def load_preset(self, values: Mapping[str, Scalar]) -> None:
        """周辺システムが所有するキー（予約キーを含む）を書き込む。"""
        with self._lock:
            self._values.update(values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def snapshot(self) -> dict[str, Scalar]:
        with self._lock:
            return dict(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)
