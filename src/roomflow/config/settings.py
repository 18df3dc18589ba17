"""Agent settings models, validated with Pydantic."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from roomflow.flow.proactive import ProactiveConfig
from roomflow.flow.strategy import StrategyConfig


class ProactiveSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    check_interval_s: float = Field(default=30.0, gt=0)
    cooldown_ms: int = Field(default=300_000, ge=0)
    max_daily_per_agent: int = Field(default=20, ge=0)


class AgentSettings(BaseModel):
    """Settings for one agent connected to a room."""

    model_config = ConfigDict(extra="forbid")

    server_url: str
    agent_name: str = Field(min_length=1, max_length=50)
    reply_probability: float = Field(default=0.9, ge=0, le=1)
    mention_always_reply: bool = True
    cooldown_min_ms: int = Field(default=5000, ge=0)
    cooldown_max_ms: int = Field(default=15000, ge=0)
    max_backoff_multiplier: float = Field(default=8.0, ge=1)
    max_context_messages: int = Field(default=20, gt=0)
    max_context_tokens: int = Field(default=2000, gt=0)
    compression_strategy: Literal["recent", "important", "hybrid"] = "hybrid"
    system_prompt: str = ""
    llm_base_url: str = ""
    llm_api_key: str = ""
    llm_model: str = ""
    request_timeout_s: float = Field(default=5.0, gt=0)
    reasoning_timeout_s: float = Field(default=60.0, gt=0)
    proactive: ProactiveSettings = Field(default_factory=ProactiveSettings)

    @model_validator(mode="after")
    def _check_cooldown_range(self) -> "AgentSettings":
        if self.cooldown_min_ms > self.cooldown_max_ms:
            raise ValueError("cooldown_min_ms must not exceed cooldown_max_ms")
        return self

    def strategy_config(self) -> StrategyConfig:
        return StrategyConfig(
            agent_name=self.agent_name,
            reply_probability=self.reply_probability,
            mention_always_reply=self.mention_always_reply,
            cooldown_min_ms=self.cooldown_min_ms,
            cooldown_max_ms=self.cooldown_max_ms,
            max_backoff_multiplier=self.max_backoff_multiplier,
        )

    def proactive_config(self) -> ProactiveConfig:
        return ProactiveConfig(
            agent_name=self.agent_name,
            enabled=self.proactive.enabled,
            check_interval_s=self.proactive.check_interval_s,
            cooldown_ms=self.proactive.cooldown_ms,
            max_daily_per_agent=self.proactive.max_daily_per_agent,
            request_timeout_s=self.request_timeout_s,
            reasoning_timeout_s=self.reasoning_timeout_s,
        )
