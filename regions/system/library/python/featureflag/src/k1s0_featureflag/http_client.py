"""決定サービス HTTP クライアント実装"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

from .config import FeatureFlagConfig
from .exceptions import FeatureFlagError, FeatureFlagErrorCodes
from .models import ActivationEvent
from .values import Scalar


class HttpDecisionTransport:
    """httpx を使った決定サービスクライアント。"""

    def __init__(self, config: FeatureFlagConfig) -> None:
        self._config = config
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if config.api_key:
            headers["x-api-key"] = config.api_key
        self._headers = headers

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self._config.timeout_seconds,
        )

    def _handle_error(self, resp: httpx.Response, context: str) -> None:
        if resp.status_code >= 400:
            raise FeatureFlagError(
                code=FeatureFlagErrorCodes.HTTP_ERROR,
                message=f"{context}: HTTP {resp.status_code}: {resp.text}",
            )

    def _decode(self, resp: httpx.Response, context: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise FeatureFlagError(
                code=FeatureFlagErrorCodes.PARSE_ERROR,
                message=f"{context}: response is not valid JSON",
                cause=e,
            ) from e

    async def fetch_campaigns(
        self, visitor_id: str, custom_visitor_id: str, context: Mapping[str, Scalar]
    ) -> Any:
        """サーバー側で割り当て済みのキャンペーンを取得する。"""
        url = f"{self._config.decision_api_url}/{self._config.env_id}/campaigns"
        body: dict[str, Any] = {
            "visitor_id": visitor_id,
            "trigger_hit": False,
            "context": dict(context),
        }
        if custom_visitor_id:
            body["anonymous_id"] = custom_visitor_id
        try:
            async with self._make_client() as client:
                resp = await client.post(url, params={"exposeAllKeys": "true"}, json=body)
            self._handle_error(resp, "fetch_campaigns")
            return self._decode(resp, "fetch_campaigns")
        except FeatureFlagError:
            raise
        except Exception as e:
            raise FeatureFlagError(
                code=FeatureFlagErrorCodes.CONNECTION_ERROR,
                message=f"Failed to fetch campaigns: {e}",
                cause=e,
            ) from e

    async def fetch_bucketing(self) -> Any:
        """クライアント割り当て用のキャンペーンカタログを取得する。"""
        url = f"{self._config.bucketing_url}/{self._config.env_id}/bucketing.json"
        try:
            async with self._make_client() as client:
                resp = await client.get(url)
            self._handle_error(resp, "fetch_bucketing")
            return self._decode(resp, "fetch_bucketing")
        except FeatureFlagError:
            raise
        except Exception as e:
            raise FeatureFlagError(
                code=FeatureFlagErrorCodes.CONNECTION_ERROR,
                message=f"Failed to fetch bucketing file: {e}",
                cause=e,
            ) from e

    async def send_activation(self, event: ActivationEvent) -> None:
        """アクティベーションを送信する。"""
        url = f"{self._config.decision_api_url}/activate"
        try:
            async with self._make_client() as client:
                resp = await client.post(url, json=event.to_dict(self._config.env_id))
            self._handle_error(resp, "send_activation")
        except FeatureFlagError:
            raise
        except Exception as e:
            raise FeatureFlagError(
                code=FeatureFlagErrorCodes.CONNECTION_ERROR,
                message=f"Failed to send activation: {e}",
                cause=e,
            ) from e
