"""Locating files produced by long-running capabilities."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from conduit.capabilities.types import InvocationResult

logger = logging.getLogger(__name__)

# Uploads are stored as "<user_id>_<file_name>"
_UPLOAD_PREFIX = re.compile(r"^\d+_")


@dataclass(frozen=True, slots=True)
class ArtifactExpectation:
    """What a long-running job is expected to leave on disk."""

    directory: Path
    prefix: str
    source_name: str
    result_key: str | None = None

    @property
    def pattern(self) -> str:
        return f"{self.prefix}*{strip_upload_prefix(self.source_name)}"


def strip_upload_prefix(file_name: str) -> str:
    return _UPLOAD_PREFIX.sub("", file_name, count=1)


def reported_artifact(
    result: InvocationResult, result_key: str
) -> tuple[Path | None, dict[str, Any]]:
    """Find the artifact path a provider reported under ``result_key``.

    Returns:
        The reported path (None if not reported) and the payload it came from.
    """
    for payload in result.json_payloads():
        value = payload.get(result_key)
        if value:
            return Path(str(value)), payload
    return None, {}


def scan_for_artifact(expectation: ArtifactExpectation) -> Path | None:
    """Best-effort search for an artifact whose acknowledgment was lost.

    Matches ``<prefix>*<source name without upload prefix>`` in the artifact
    directory. Racy: an artifact that lands after the scan is missed.
    """
    directory = expectation.directory
    if not directory.is_dir():
        return None
    suffix = strip_upload_prefix(expectation.source_name)
    for entry in sorted(directory.iterdir()):
        if (
            entry.is_file()
            and entry.name.startswith(expectation.prefix)
            and entry.name.endswith(suffix)
        ):
            return entry
    logger.debug(
        "artifact_scan_miss",
        extra={"file.directory": str(directory), "file.pattern": expectation.pattern},
    )
    return None
