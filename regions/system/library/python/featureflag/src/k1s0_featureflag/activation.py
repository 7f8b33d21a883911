"""アクティベーションイベントのキュー"""

from __future__ import annotations

import threading
from collections import deque
from typing import Protocol

import structlog

from .models import ActivationEvent

logger = structlog.stdlib.get_logger(__name__)


class _ActivationSender(Protocol):
    """アクティベーションを送信するプロトコル。"""

    async def send_activation(self, event: ActivationEvent) -> None: ...


class ActivationQueue:
    """読み取り側から積まれたアクティベーションを保持し、まとめて送信する。

    重複排除は行わない。送信に失敗した時点で残りはキューに残す。
    """

    def __init__(self) -> None:
        self._pending: deque[ActivationEvent] = deque()
        self._lock = threading.Lock()

    def report(self, event: ActivationEvent) -> None:
        self._pending.append(event)

    def pending(self) -> list[ActivationEvent]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    async def drain(self, sender: _ActivationSender) -> int:
        """キューの先頭から順に送信し、送信できた件数を返す。"""
        sent = 0
        while True:
            with self._lock:
                if not self._pending:
                    break
                event = self._pending.popleft()
            try:
                await sender.send_activation(event)
            except Exception as e:
                logger.warning(
                    "Failed to send activation",
                    variation_group_id=event.variation_group_id,
                    variation_id=event.variation_id,
                    error=str(e),
                )
                with self._lock:
                    self._pending.appendleft(event)
                break
            sent += 1
        return sent
