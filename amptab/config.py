# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Typed configuration for the completion engine.

Replaces loosely merged option tables with validated pydantic models.
Unknown options are rejected so typos surface immediately.

Example:
    from amptab.config import AmpTabConfig

    config = AmpTabConfig.from_options(
        {
            "preload": False,
            "token_limits": {"treesitter_max_lines": 60},
        }
    )
"""

import logging
import os
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from amptab.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEBUG_ENV_VAR = "AMPTAB_DEBUG"


class TokenLimits(BaseModel):
    """Budgets and strategy switches for prompt construction."""

    model_config = ConfigDict(extra="forbid")

    prefix_tokens: int = Field(
        default=1500, ge=0, description="Budget for file text before the editable region"
    )
    suffix_tokens: int = Field(
        default=1500, ge=0, description="Budget for file text after the editable region"
    )
    code_to_rewrite_prefix_tokens: int = Field(
        default=100, ge=0, description="Editable region size above the cursor (no syntax tree)"
    )
    code_to_rewrite_suffix_tokens: int = Field(
        default=900, ge=0, description="Editable region size below the cursor (no syntax tree)"
    )
    use_treesitter: bool = Field(default=True, description="Select regions from the syntax tree")
    treesitter_max_lines: int = Field(
        default=100, ge=1, description="Maximum line span of a syntax-aware region"
    )
    prefer_function: bool = Field(
        default=True, description="Prefer the enclosing function over smaller blocks"
    )
    use_enrichment: bool = Field(
        default=True, description="Include edits, viewed files, clipboard and lint errors"
    )
    fallback_chars_per_line: int = Field(
        default=10,
        ge=1,
        description="Rough characters-per-line used to size regions without a syntax tree",
    )


class ClientConfig(BaseModel):
    """Connection settings for the completion endpoint."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(default="https://ampcode.com", description="API base URL")
    endpoint: str = Field(default="/api/tab/llm-proxy", description="Completion endpoint path")
    model: str = Field(default="amp-tab-long-suggestion-model-instruct", description="Model name")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=1024, ge=1, description="Maximum tokens to generate")
    timeout_seconds: float = Field(default=60.0, gt=0, description="Request timeout")
    api_key_env: str = Field(
        default="AMP_API_KEY", description="Environment variable holding the API key"
    )

    @property
    def url(self) -> str:
        return self.base_url.rstrip("/") + self.endpoint

    def resolve_api_key(self) -> Optional[str]:
        """Read the credential from the environment, None when unset or blank."""
        value = os.environ.get(self.api_key_env, "").strip()
        return value or None


class AmpTabConfig(BaseModel):
    """Top-level engine configuration."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True, description="Master switch for completions")
    debug: bool = Field(default=False, description="Verbose pipeline logging")
    auto_trigger: bool = Field(default=True, description="Trigger on insert-mode idle")
    preload: bool = Field(default=True, description="Prefetch completions at diagnostics")
    token_limits: TokenLimits = Field(default_factory=TokenLimits)
    client: ClientConfig = Field(default_factory=ClientConfig)

    cache_max_items: int = Field(default=20, ge=1, description="Completion cache capacity")
    cache_dedup_lines: int = Field(
        default=5, ge=0, description="Entries closer than this many lines replace each other"
    )
    preload_debounce_ms: int = Field(default=2000, ge=0, description="Preload debounce window")
    preload_max_per_buffer: int = Field(
        default=3, ge=0, description="Maximum diagnostics preloaded per pass"
    )
    preload_nearby_lines: int = Field(
        default=3, ge=0, description="A cached completion this close covers a diagnostic"
    )
    visited_ttl_ms: int = Field(
        default=30000, ge=0, description="How long a visited diagnostic is skipped"
    )
    hot_streak_delay_ms: int = Field(
        default=100, ge=0, description="Delay before re-triggering after a full accept"
    )
    view_track_delay_ms: int = Field(
        default=500, ge=0, description="Delay before recording a buffer view"
    )
    excluded_filetypes: List[str] = Field(
        default_factory=lambda: ["TelescopePrompt", "nofile", "help", "qf", ""],
        description="Filetypes that never auto-trigger",
    )

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "AmpTabConfig":
        """Build a configuration from a plain mapping of user options.

        Raises:
            ConfigurationError: If an option is unknown or has an invalid value
        """
        options = dict(options or {})
        if os.environ.get(DEBUG_ENV_VAR) and "debug" not in options:
            options["debug"] = True
        try:
            config = cls.model_validate(options)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid completion options: {e}") from e
        logger.debug(f"Loaded completion config: {config.model_dump()}")
        return config
