"""FeatureFlagEngine: 訪問者ごとの決定エンジン"""

from __future__ import annotations

import asyncio
import contextlib
import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from .activation import ActivationQueue
from .allocation import AllocationDraw, AllocationEngine, draw_allocation
from .client import DecisionTransport
from .config import FeatureFlagConfig
from .context import ALL_USERS, CLIENT, DEVICE_CONTEXT_KEYS, USERS, VERSION, VisitorContext
from .http_client import HttpDecisionTransport
from .logger import new_logger
from .memory import InMemoryAllocationStore
from .models import ActivationEvent, Catalog, Modification
from .parser import parse
from .resolver import DecisionMode, resolve_all
from .store import AllocationStore
from .table import ActiveModificationTable, PanicSwitch
from .values import kind_of

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T", bool, int, float, str)

SDK_CLIENT = "python"
SDK_VERSION = "0.1.0"


@dataclass(frozen=True)
class VisitorIdentity:
    """訪問者 ID の組。同期パスの有効性はインスタンスの同一性で判定する。"""

    visitor_id: str
    custom_visitor_id: str = ""


class FeatureFlagEngine:
    """訪問者コンテキスト・アクティブテーブル・パニックスイッチを所有するエンジン。

    同期パスは asyncio.Lock で直列化される。テーブルの差し替えと訪問者 ID の
    変更は同じロックで保護され、古い訪問者向けのパスの結果は破棄される。
    """

    def __init__(
        self,
        config: FeatureFlagConfig,
        transport: DecisionTransport,
        store: AllocationStore | None = None,
        queue: ActivationQueue | None = None,
        draw: AllocationDraw | None = None,
        visitor_id: str = "",
        custom_visitor_id: str = "",
    ) -> None:
        self._config = config
        self._transport = transport
        self._store = store or InMemoryAllocationStore()
        self._allocator = AllocationEngine(self._store)
        self._queue = queue or ActivationQueue()
        self._draw = draw or draw_allocation
        self._panic = PanicSwitch()
        self._table = ActiveModificationTable(self._panic, on_activate=self._on_activate)
        self._context = VisitorContext()
        self._identity = VisitorIdentity(visitor_id or uuid.uuid4().hex, custom_visitor_id)
        self._swap_lock = threading.Lock()
        self._sync_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._device: dict[str, Any] = {}
        self._load_preset()

    @classmethod
    def from_config(
        cls,
        config: FeatureFlagConfig,
        transport: DecisionTransport | None = None,
        **kwargs: Any,
    ) -> FeatureFlagEngine:
        """設定からエンジンを作成する。

        config.log に従って structlog を設定し、transport を省略した場合は
        HttpDecisionTransport を使う。残りの引数はコンストラクタに渡す。
        """
        new_logger(config.log.level, config.log.format)
        if transport is None:
            transport = HttpDecisionTransport(config)
        return cls(config, transport, **kwargs)

    async def __aenter__(self) -> FeatureFlagEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def mode(self) -> DecisionMode:
        return self._config.mode

    @property
    def visitor_id(self) -> str:
        return self._identity.visitor_id

    @property
    def custom_visitor_id(self) -> str:
        return self._identity.custom_visitor_id

    @property
    def panic(self) -> bool:
        return self._panic.enabled

    @property
    def context(self) -> dict[str, Any]:
        return self._context.snapshot()

    @property
    def activations(self) -> ActivationQueue:
        return self._queue

    def set_panic(self, enabled: bool) -> None:
        """パニックモードを切り替える。有効中は読み込みが既定値、書き込みが no-op になる。"""
        self._panic.set(enabled)

    def _load_preset(self) -> None:
        self._context.load_preset(
            {
                **self._device,
                ALL_USERS: "",
                CLIENT: SDK_CLIENT,
                VERSION: SDK_VERSION,
                USERS: self._identity.visitor_id,
            }
        )

    def set_device_context(self, values: Mapping[str, Any]) -> int:
        """端末・プラットフォーム属性（sdk_* キー）を設定する。

        ホストの update_context では書き込めないキーで、訪問者の変更や
        clear_context の後も維持される。受け付けた件数を返す。
        """
        accepted: dict[str, Any] = {}
        for key, value in values.items():
            if key not in DEVICE_CONTEXT_KEYS or kind_of(value) is None:
                logger.warning("device context entry rejected", key=key)
                continue
            accepted[key] = value
        self._device.update(accepted)
        self._context.load_preset(accepted)
        return len(accepted)

    def _on_activate(self, modification: Modification) -> None:
        identity = self._identity
        self._queue.report(
            ActivationEvent(
                variation_group_id=modification.variation_group_id,
                variation_id=modification.variation_id,
                visitor_id=identity.visitor_id,
                custom_visitor_id=identity.custom_visitor_id,
            )
        )

    def _schedule_sync(self) -> asyncio.Task[bool]:
        task = asyncio.get_running_loop().create_task(self.sync())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # 訪問者 ID・コンテキスト
    # ------------------------------------------------------------------

    async def set_visitor_id(self, visitor_id: str, custom_visitor_id: str = "") -> bool:
        """訪問者 ID を変更する。

        テーブルとホストのコンテキストを消去し、旧訪問者の割り当て記録を削除する。
        実行中の同期パスの結果は適用されない。

        Returns:
            訪問者が変わった場合は True
        """
        if self._panic.enabled:
            return False
        fresh = VisitorIdentity(visitor_id or uuid.uuid4().hex, custom_visitor_id)
        with self._swap_lock:
            previous = self._identity
            if previous == fresh:
                return False
            self._identity = fresh
            self._table.clear()
        self._context.clear()
        self._load_preset()
        logger.info(
            "visitor changed",
            previous_visitor_id=previous.visitor_id,
            visitor_id=fresh.visitor_id,
        )
        try:
            removed = await self._store.clear(previous.visitor_id, previous.custom_visitor_id)
            logger.debug("allocations cleared", visitor_id=previous.visitor_id, removed=removed)
        except Exception as e:
            logger.error(
                "allocation store clear failed", visitor_id=previous.visitor_id, error=str(e)
            )
        return True

    def update_context(
        self, key: str, value: Any, sync: bool = False
    ) -> asyncio.Task[bool] | None:
        """コンテキストを 1 件更新する。

        sync=True の場合は同期パスを開始し、その Task を返す（実行中のイベントループが必要）。
        """
        if self._panic.enabled:
            return None
        self._context.update(key, value)
        return self._schedule_sync() if sync else None

    def update_context_values(
        self, values: Mapping[str, Any], sync: bool = False
    ) -> asyncio.Task[bool] | None:
        """コンテキストを複数件更新する。"""
        if self._panic.enabled:
            return None
        self._context.update_all(values)
        return self._schedule_sync() if sync else None

    def clear_context(self) -> None:
        """ホストが設定したコンテキスト値をすべて消去する。"""
        self._context.clear()
        self._load_preset()

    # ------------------------------------------------------------------
    # 同期
    # ------------------------------------------------------------------

    async def _fetch(self, identity: VisitorIdentity, context: Mapping[str, Any]) -> Any:
        if self._config.mode == DecisionMode.DECISION_API:
            return await self._transport.fetch_campaigns(
                identity.visitor_id, identity.custom_visitor_id, context
            )
        return await self._transport.fetch_bucketing()

    async def sync(self, campaign_id: str | None = None) -> bool:
        """キャンペーンを取得・解決してアクティブテーブルを差し替える。

        取得に失敗した場合や、パス中に訪問者が変わった場合は既存のテーブルを維持する。
        campaign_id を指定した場合はそのキャンペーンのグループに属するエントリだけを
        入れ替え、他のキャンペーンのエントリは維持する。

        Returns:
            テーブルを差し替えた場合は True
        """
        async with self._sync_lock:
            if self._panic.enabled:
                return False
            identity = self._identity
            context = self._context.snapshot()
            try:
                payload = await self._fetch(identity, context)
            except Exception as e:
                logger.error("campaign sync failed", visitor_id=identity.visitor_id, error=str(e))
                return False

            catalog = parse(payload)
            if catalog.panic:
                self._panic.set(True)
                return False
            if self._identity is not identity:
                logger.info("stale sync discarded", visitor_id=identity.visitor_id)
                return False
            if campaign_id is not None and campaign_id not in catalog.campaigns:
                logger.warning("campaign not found in catalog", campaign_id=campaign_id)
                return False

            modifications = await resolve_all(
                catalog,
                context,
                self._config.mode,
                engine=self._allocator,
                visitor_id=identity.visitor_id,
                custom_visitor_id=identity.custom_visitor_id,
                draw=self._draw(),
                campaign_id=campaign_id,
                is_current=lambda: self._identity is identity,
            )
            with self._swap_lock:
                if self._identity is not identity:
                    logger.info("stale sync discarded", visitor_id=identity.visitor_id)
                    return False
                if campaign_id is not None:
                    modifications = self._merge_campaign(catalog, campaign_id, modifications)
                replaced = self._table.replace(modifications)
            logger.debug(
                "modifications synchronized",
                visitor_id=identity.visitor_id,
                campaigns=len(catalog),
                modifications=len(modifications),
            )
            return replaced

    def _merge_campaign(
        self, catalog: Catalog, campaign_id: str, modifications: Mapping[str, Modification]
    ) -> dict[str, Modification]:
        group_ids = catalog.campaigns[campaign_id].variation_groups.keys()
        merged = {
            key: modification
            for key, modification in self._table.snapshot().items()
            if modification.variation_group_id not in group_ids
        }
        merged.update(modifications)
        return merged

    # ------------------------------------------------------------------
    # 読み込み
    # ------------------------------------------------------------------

    def get_modification(self, key: str, default: T, activate: bool = False) -> T:
        """key の値を default と同じ種別で返す。"""
        return self._table.get(key, default, activate)

    def get_bool(self, key: str, default: bool, activate: bool = False) -> bool:
        return self._table.get_bool(key, default, activate)

    def get_number(self, key: str, default: float, activate: bool = False) -> float:
        return self._table.get_number(key, default, activate)

    def get_string(self, key: str, default: str, activate: bool = False) -> str:
        return self._table.get_string(key, default, activate)

    def get_modification_info(self, key: str) -> Modification | None:
        return self._table.get_modification_info(key)

    def activate_modification(self, key: str) -> bool:
        """key を生成したバリエーションへの接触を報告する。"""
        return self._table.activate(key)

    def modifications(self) -> dict[str, Modification]:
        return dict(self._table.snapshot())

    # ------------------------------------------------------------------
    # 終了処理
    # ------------------------------------------------------------------

    async def flush_activations(self) -> int:
        """キューに溜まったアクティベーションを送信する。"""
        if self._panic.enabled:
            return 0
        return await self._queue.drain(self._transport)

    async def close(self) -> None:
        """実行中の同期タスクを停止し、残ったアクティベーションを送信する。"""
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        await self.flush_activations()
