"""InMemoryAllocationStore 実装"""

from __future__ import annotations

from .store import AllocationStore

_Key = tuple[str, str, str]


class InMemoryAllocationStore(AllocationStore):
    """テスト用インメモリ割り当てストア。"""

    def __init__(self) -> None:
        self._records: dict[_Key, str] = {}

    async def get(self, visitor_id: str, custom_visitor_id: str, group_id: str) -> str | None:
        return self._records.get((visitor_id, custom_visitor_id, group_id))

    async def put(
        self, visitor_id: str, custom_visitor_id: str, group_id: str, variation_id: str
    ) -> None:
        self._records[(visitor_id, custom_visitor_id, group_id)] = variation_id

    async def clear(self, visitor_id: str, custom_visitor_id: str) -> int:
        keys = [k for k in self._records if k[0] == visitor_id and k[1] == custom_visitor_id]
        for key in keys:
            del self._records[key]
        return len(keys)

    def all_records(self) -> dict[_Key, str]:
        return dict(self._records)
