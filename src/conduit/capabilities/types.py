"""Capability subsystem public types."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Capability:
    """One named, schema-described action a provider can perform."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProviderLaunchSpec:
    """How to start (or attach to) a tool provider."""

    id: str
    command: str
    name: str | None = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    auto_connect: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(slots=True)
class ProviderConnection:
    """A live provider connection tracked by the connection manager."""

    id: str
    display_name: str
    launch_spec: ProviderLaunchSpec
    connected: bool = True


@dataclass(slots=True)
class InvocationResult:
    """Outcome of one successful capability call."""

    capability_name: str
    provider_id: str
    content: list[str] = field(default_factory=list)
    structured: dict[str, Any] | None = None

    def text(self) -> str:
        """Render the result as model-visible text."""
        if self.content:
            return "\n".join(self.content)
        if self.structured is not None:
            return json.dumps(self.structured)
        return ""

    def json_payloads(self) -> list[dict[str, Any]]:
        """JSON objects found in the result (structured payload and text blocks)."""
        payloads: list[dict[str, Any]] = []
        if isinstance(self.structured, dict):
            payloads.append(self.structured)
        for item in self.content:
            try:
                parsed = json.loads(item)
            except (TypeError, json.JSONDecodeError):
                continue
            if isinstance(parsed, dict):
                payloads.append(parsed)
        return payloads
