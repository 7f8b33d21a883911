"""featureflag 設定（pydantic BaseModel）と YAML ローダー"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import FeatureFlagError, FeatureFlagErrorCodes
from .resolver import DecisionMode


class LogSection(BaseModel):
    """ログ設定。"""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class FeatureFlagConfig(BaseModel):
    """featureflag クライアント設定。"""

    env_id: str = Field(min_length=1)
    mode: DecisionMode = DecisionMode.DECISION_API
    decision_api_url: str = "https://decision-api.flagship.io/v1"
    bucketing_url: str = "https://cdn.flagship.io"
    api_key: str = ""
    timeout_seconds: float = Field(default=2.0, gt=0)
    log: LogSection = Field(default_factory=LogSection)


def load_config(path: Path) -> FeatureFlagConfig:
    """YAML 設定ファイルを読み込んで FeatureFlagConfig を返す。

    ファイルの読み込み・YAML 解析・バリデーションの失敗は
    FeatureFlagError(CONFIG_ERROR) になる。
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.CONFIG_ERROR,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data: dict[str, Any] = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.CONFIG_ERROR,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    try:
        return FeatureFlagConfig.model_validate(data)
    except ValidationError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.CONFIG_ERROR,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e
