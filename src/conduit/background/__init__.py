"""Background execution of long-running capability invocations."""

from conduit.background.artifacts import (
    ArtifactExpectation,
    reported_artifact,
    scan_for_artifact,
    strip_upload_prefix,
)
from conduit.background.supervisor import (
    BackgroundOutcome,
    BackgroundSupervisor,
    LongRunningJob,
    OutcomeSink,
    OutcomeStatus,
)

__all__ = [
    "ArtifactExpectation",
    "BackgroundOutcome",
    "BackgroundSupervisor",
    "LongRunningJob",
    "OutcomeSink",
    "OutcomeStatus",
    "reported_artifact",
    "scan_for_artifact",
    "strip_upload_prefix",
]
