"""AllocationStore 抽象基底クラス"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AllocationStore(ABC):
    """訪問者ごとの割り当て結果を永続化するストア。

    キーは (visitor_id, custom_visitor_id, group_id) の組。
    """

    @abstractmethod
    async def get(self, visitor_id: str, custom_visitor_id: str, group_id: str) -> str | None:
        """記録済みのバリエーション ID を取得する。存在しなければ None。"""
        ...

    @abstractmethod
    async def put(
        self, visitor_id: str, custom_visitor_id: str, group_id: str, variation_id: str
    ) -> None:
        """割り当て結果を記録する。"""
        ...

    @abstractmethod
    async def clear(self, visitor_id: str, custom_visitor_id: str) -> int:
        """訪問者の割り当て結果をすべて削除し、削除件数を返す。"""
        ...
