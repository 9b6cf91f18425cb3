"""Tool-call orchestration."""

from conduit.core.orchestrator import (
    BUDGET_FALLBACK_TEXT,
    EMPTY_REPLY_TEXT,
    InvocationRecord,
    Orchestrator,
    OrchestratorConfig,
    OrchestratorResult,
)

__all__ = [
    "BUDGET_FALLBACK_TEXT",
    "EMPTY_REPLY_TEXT",
    "InvocationRecord",
    "Orchestrator",
    "OrchestratorConfig",
    "OrchestratorResult",
]
