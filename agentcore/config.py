"""Settings via pydantic-settings with AGENTCORE_ env prefix.

The API key is read from the unprefixed OPENAI_API_KEY so a single .env
file can be shared with other OpenAI-compatible tooling.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentcore.context.checker import ContextThresholds


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENTCORE_", env_file=".env")

    log_level: str = "info"

    # LLM
    model: str = "gpt-4o-mini"
    api_base_url: str = "https://api.openai.com/v1"
    api_key: str = Field("", validation_alias="OPENAI_API_KEY")
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds
    max_tokens: int = 4096
    llm_max_retries: int = 3
    llm_retry_base_delay: float = 1.0
    llm_retry_max_delay: float = 30.0

    # Pricing (USD per million tokens)
    price_input_per_million: float = 0.15
    price_output_per_million: float = 0.60

    # Context budget
    model_limit: int = 64000
    compression_trigger: float = 0.70
    compression_preserve: float = 0.30
    overflow_warning: float = 0.95
    tool_output_summary: int = 2000  # tokens
    enable_compression: bool = True
    enable_tool_summarization: bool = False
    summary_timeout: float = 60.0  # seconds

    # Tools
    approval_mode: Literal["default", "autoEdit", "yolo", "fullAuto"] = "default"
    max_loops: int = 100
    tool_batch_delay: float = 0.5  # seconds between serial calls
    process_kill_grace: float = 0.5  # SIGTERM -> SIGKILL window
    workspace_dir: str = "."

    # Sessions
    session_db_url: str = "sqlite+aiosqlite:///agentcore-sessions.db"
    session_dir: str = ""  # file store used instead of SQL when set

    @model_validator(mode="after")
    def _validate_thresholds(self) -> "Settings":
        if self.model_limit <= 0:
            raise ValueError("model_limit must be > 0")
        if not 0 < self.compression_trigger < self.overflow_warning <= 1:
            raise ValueError(
                f"Thresholds must satisfy 0 < compression_trigger "
                f"({self.compression_trigger}) < overflow_warning "
                f"({self.overflow_warning}) <= 1"
            )
        if not 0 < self.compression_preserve < 1:
            raise ValueError("compression_preserve must be between 0 and 1")
        return self

    @property
    def thresholds(self) -> ContextThresholds:
        return ContextThresholds(
            compression_trigger=self.compression_trigger,
            compression_preserve=self.compression_preserve,
            overflow_warning=self.overflow_warning,
            tool_output_summary=self.tool_output_summary,
        )
