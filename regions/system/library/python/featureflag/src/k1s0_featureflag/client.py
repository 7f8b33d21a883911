"""DecisionTransport プロトコル"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from .models import ActivationEvent
from .values import Scalar


class DecisionTransport(Protocol):
    """リモート決定サービスとの通信プロトコル。"""

    async def fetch_campaigns(
        self, visitor_id: str, custom_visitor_id: str, context: Mapping[str, Scalar]
    ) -> Any:
        """サーバー側で割り当て済みのキャンペーンを取得する。"""
        ...

    async def fetch_bucketing(self) -> Any:
        """クライアント割り当て用のキャンペーンカタログを取得する。"""
        ...

    async def send_activation(self, event: ActivationEvent) -> None:
        """アクティベーションを送信する。"""
        ...
