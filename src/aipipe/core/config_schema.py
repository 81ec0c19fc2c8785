"""Pydantic models for the effective configuration.

``Configuration`` is the typed result of layering every configuration
source (see ``aipipe.core.config``).  Field aliases match the camelCase keys
used in ``config.json``; snake_case names are accepted too.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from aipipe.core.llm.config import DEFAULT_MODEL, TEMPERATURE_MAX, TEMPERATURE_MIN

BudgetMode = Literal["per-request", "cumulative"]
OutputFormat = Literal["json", "yaml", "csv", "text"]


class ProviderOverride(BaseModel):
    """Per-provider override block (``providers.<id>.*``)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    system: str | None = None
    temperature: float | None = Field(default=None, ge=TEMPERATURE_MIN, le=TEMPERATURE_MAX)
    max_output_tokens: int | None = Field(default=None, gt=0, alias="maxOutputTokens")


class Configuration(BaseModel):
    """Effective settings for one invocation."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    model: str = DEFAULT_MODEL
    system: str | None = None
    temperature: float | None = Field(default=None, ge=TEMPERATURE_MIN, le=TEMPERATURE_MAX)
    max_output_tokens: int | None = Field(default=None, gt=0, alias="maxOutputTokens")
    aliases: dict[str, str] = {}
    providers: dict[str, ProviderOverride] = {}
    api_keys: dict[str, str] = Field(default={}, alias="apiKeys", repr=False)

    budget: float | None = Field(default=None, ge=0)
    budget_mode: BudgetMode = Field(default="per-request", alias="budgetMode")
    retries: int = Field(default=3, ge=0)
    cache: bool = True
    cache_ttl: float | None = Field(default=None, gt=0, alias="cacheTtl")

    stream: bool = True
    json_output: bool = Field(default=False, alias="json")
    output_format: OutputFormat = Field(default="json", alias="format")
    markdown: bool = False
    show_cost: bool = Field(default=False, alias="cost")
