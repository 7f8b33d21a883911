"""k1s0 featureflag library."""

from .activation import ActivationQueue
from .allocation import AllocationEngine, draw_allocation, select_by_weight
from .client import DecisionTransport
from .config import FeatureFlagConfig, LogSection, load_config
from .context import DEVICE_CONTEXT_KEYS, RESERVED_CONTEXT_KEYS, VisitorContext
from .engine import FeatureFlagEngine, VisitorIdentity
from .exceptions import FeatureFlagError, FeatureFlagErrorCodes
from .http_client import HttpDecisionTransport
from .logger import new_logger
from .memory import InMemoryAllocationStore
from .models import (
    ActivationEvent,
    Campaign,
    Catalog,
    Modification,
    Targeting,
    TargetingGroups,
    TargetingList,
    Variation,
    VariationGroup,
)
from .parser import parse, parse_json
from .resolver import DecisionMode, resolve_all
from .store import AllocationStore
from .table import ActiveModificationTable, PanicSwitch
from .targeting import TargetingOperator, compare, evaluate
from .values import FlagValue, ValueKind

__all__ = [
    "ActivationEvent",
    "ActivationQueue",
    "ActiveModificationTable",
    "AllocationEngine",
    "AllocationStore",
    "Campaign",
    "Catalog",
    "DEVICE_CONTEXT_KEYS",
    "DecisionMode",
    "DecisionTransport",
    "FeatureFlagConfig",
    "FeatureFlagEngine",
    "FeatureFlagError",
    "FeatureFlagErrorCodes",
    "FlagValue",
    "HttpDecisionTransport",
    "InMemoryAllocationStore",
    "LogSection",
    "Modification",
    "PanicSwitch",
    "RESERVED_CONTEXT_KEYS",
    "Targeting",
    "TargetingGroups",
    "TargetingList",
    "TargetingOperator",
    "ValueKind",
    "Variation",
    "VariationGroup",
    "VisitorContext",
    "VisitorIdentity",
    "compare",
    "draw_allocation",
    "evaluate",
    "load_config",
    "new_logger",
    "parse",
    "parse_json",
    "resolve_all",
    "select_by_weight",
]
