"""Operator action center: routing, policy, lifecycle and audit trail."""

from .builder import ActionTaskBuilder
from .engine import ActionEngine
from .log import ActionLog
from .policy import ActionPolicyEngine
from .router import ActionRouter
from .types import (
    ActionAuthorizationError,
    ActionCenterError,
    ActionInputError,
    ActionPolicyContext,
    ActionQuery,
    ActionResult,
    ActionTask,
    ActionTaskNotFoundError,
    ActionTransitionError,
    EngineInputs,
    LifecycleOutcome,
    SourceRecord,
)

__all__ = [
    "ActionAuthorizationError",
    "ActionCenterError",
    "ActionEngine",
    "ActionInputError",
    "ActionLog",
    "ActionPolicyContext",
    "ActionPolicyEngine",
    "ActionQuery",
    "ActionResult",
    "ActionRouter",
    "ActionTask",
    "ActionTaskBuilder",
    "ActionTaskNotFoundError",
    "ActionTransitionError",
    "EngineInputs",
    "LifecycleOutcome",
    "SourceRecord",
]
