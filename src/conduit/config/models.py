"""Validated settings for the bot, its model backend and its tool providers."""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from conduit.capabilities.types import ProviderLaunchSpec
from conduit.errors import ConfigError


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant with access to tools provided by connected "
    "servers. Use the appropriate tools when they can help answer the user's "
    "question. Give clear, concise answers and explain what you are doing when "
    "you use tools."
)


class ModelConfig(BaseModel):
    """Model backend plus the tool-call loop settings that go with it."""

    provider: Literal["anthropic", "openai"]
    model: str
    temperature: float | None = None
    max_tokens: int = 4096
    max_steps: int = Field(default=10, ge=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


class ProviderConfig(BaseModel):
    """Credentials for one model API."""

    api_key: SecretStr | None = None


class TelegramConfig(BaseModel):
    """Configuration for the Telegram transport."""

    bot_token: SecretStr | None = None
    # Self-hosted Bot API server (allows large file transfers)
    api_url: str | None = None
    # Host directory mounted as the local server's working dir
    local_data_dir: Path | None = None
    server_data_dir: str = "/var/lib/telegram-bot-api"


class ServerSpecConfig(BaseModel):
    """Launch spec for one tool provider."""

    id: str
    name: str | None = None
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    auto_connect: bool = False

    @field_validator("id", "command")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def to_launch_spec(self) -> ProviderLaunchSpec:
        return ProviderLaunchSpec(
            id=self.id,
            command=self.command,
            name=self.name,
            args=tuple(self.args),
            env=dict(self.env),
            auto_connect=self.auto_connect,
        )


class SessionConfig(BaseModel):
    """Per-user session bounds."""

    max_history: int = Field(default=20, ge=1)
    idle_timeout_seconds: float = Field(default=30 * 60, gt=0)
    sweep_interval_seconds: float = Field(default=5 * 60, gt=0)


class LongRunningCapabilityConfig(BaseModel):
    """A capability that runs outside the chat turn and produces an artifact.

    Arguments are built from ``arguments`` plus the document path under
    ``path_argument``. ``caption_arguments`` maps an argument name to
    phrase -> value pairs; the first phrase found in the caption wins.
    """

    capability: str
    path_argument: str = "filePath"
    artifact_prefix: str
    result_key: str | None = None
    arguments: dict[str, str] = Field(default_factory=dict)
    caption_arguments: dict[str, dict[str, str]] = Field(default_factory=dict)


def _default_long_running() -> list[LongRunningCapabilityConfig]:
    return [
        LongRunningCapabilityConfig(
            capability="translate_pdf",
            path_argument="filePath",
            artifact_prefix="translated_",
            result_key="translatedFile",
            arguments={"sourceLang": "en", "targetLang": "es"},
            caption_arguments={
                "targetLang": {
                    "to spanish": "es",
                    "a español": "es",
                    "to english": "en",
                    "a inglés": "en",
                    "to french": "fr",
                    "a francés": "fr",
                }
            },
        )
    ]


class BackgroundConfig(BaseModel):
    """Background retry supervisor settings."""

    max_attempts: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=5.0, ge=0)
    backoff_base_seconds: float = Field(default=5.0, ge=0)
    grace_period_seconds: float = Field(default=10.0, ge=0)
    max_concurrent: int = Field(default=4, ge=1)
    artifact_dir: Path = Path("temp")
    jobs: list[LongRunningCapabilityConfig] = Field(
        default_factory=_default_long_running
    )

    def job_for(self, capability: str) -> LongRunningCapabilityConfig | None:
        for job in self.jobs:
            if job.capability == capability:
                return job
        return None


API_KEY_ENV_VARS = {"anthropic": "ANTHROPIC_API_KEY", "openai": "OPENAI_API_KEY"}


class ConduitConfig(BaseModel):
    """Everything ``conduit serve`` and ``conduit chat`` need to start.

    ``models.default`` is required. Server ids must be unique because
    ``/connect`` addresses servers by id.
    """

    models: dict[str, ModelConfig] = Field(default_factory=dict)
    anthropic: ProviderConfig | None = None
    openai: ProviderConfig | None = None
    telegram: TelegramConfig | None = None
    servers: list[ServerSpecConfig] = Field(default_factory=list)
    sessions: SessionConfig = Field(default_factory=SessionConfig)
    background: BackgroundConfig = Field(default_factory=BackgroundConfig)

    @model_validator(mode="after")
    def _check_models_and_servers(self) -> "ConduitConfig":
        if "default" not in self.models:
            raise ValueError("No default model configured. Add [models.default]")
        ids = [server.id for server in self.servers]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate server id: {', '.join(duplicates)}")
        return self

    def get_model(self, alias: str) -> ModelConfig:
        """Look up a model alias.

        Raises:
            ConfigError: Unknown alias.
        """
        try:
            return self.models[alias]
        except KeyError:
            known = ", ".join(sorted(self.models))
            raise ConfigError(f"Unknown model alias '{alias}'. Available: {known}") from None

    @property
    def default_model(self) -> ModelConfig:
        return self.get_model("default")

    def get_server(self, server_id: str) -> ServerSpecConfig | None:
        return next((s for s in self.servers if s.id == server_id), None)

    def resolve_api_key(self, alias: str = "default") -> SecretStr | None:
        """API key for the alias's backend: its config section, then the environment."""
        backend = self.get_model(alias).provider
        section: ProviderConfig | None = getattr(self, backend)
        if section is not None and section.api_key is not None:
            return section.api_key
        if value := os.environ.get(API_KEY_ENV_VARS[backend]):
            return SecretStr(value)
        return None
