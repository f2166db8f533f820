"""
Configuration Management
========================

All environment-driven settings for ClipMind, validated and typed in one
place. Components receive their section (e.g. `config.memory`) at
construction time instead of reading os.environ themselves.

Sections:
- llm:      language-model and embedding endpoints (OpenAI-compatible)
- mcp:      remote tool server
- memory:   tier sizes, TTL, compression threshold
- pipeline: per-stage timeouts, context budget, tool concurrency
- slack:    optional Slack front end

Usage:
    from clipmind.utils.config import get_config

    config = get_config()
    print(config.llm.model)
    print(config.pipeline.intent_timeout_seconds)
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _required(name: str) -> str:
    """
    Get a required environment variable.

    Raises:
        ValueError: If the variable is not set
    """
    value = os.getenv(name)
    if not value:
        raise ValueError(
            f"Missing required environment variable: {name}\n"
            f"Please ensure {name} is set in your .env file."
        )
    return value


def _optional(name: str, default: str) -> str:
    return os.getenv(name, default)


def _optional_int(name: str, default: int) -> int:
    """Get an integer variable, falling back to `default` if unset or invalid."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"Warning: {name} is not a valid integer, using default: {default}")
        return default


def _optional_float(name: str, default: float) -> float:
    """Get a float variable, falling back to `default` if unset or invalid."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        print(f"Warning: {name} is not a valid number, using default: {default}")
        return default


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class LLMConfig:
    """Language-model service configuration."""
    api_key: str              # Any non-empty value works for local Ollama
    base_url: str | None      # None means api.openai.com
    model: str
    embedding_model: str


@dataclass(frozen=True)
class MCPConfig:
    """Remote tool server configuration."""
    server_url: str | None          # JSON-RPC endpoint; None disables tools
    timeout_seconds: float
    catalog_refresh_minutes: int    # 0 disables periodic refresh


@dataclass(frozen=True)
class MemoryConfig:
    """Tiered memory configuration."""
    short_term_max_items: int
    short_term_ttl_hours: float
    working_max_size: int
    compression_threshold: int
    vector_store_dir: Path | None   # None keeps the vector index in memory
    sweep_interval_minutes: int


@dataclass(frozen=True)
class PipelineConfig:
    """
    Per-stage timeouts and budgets.

    Every stage timeout must be shorter than request_timeout_seconds so a
    hung dependency degrades one stage instead of the whole request.
    """
    request_timeout_seconds: float
    intent_timeout_seconds: float
    selection_timeout_seconds: float
    tool_timeout_seconds: float
    synthesis_timeout_seconds: float
    chat_timeout_seconds: float
    max_context_tokens: int
    tool_concurrency: int           # 1 means sequential execution
    long_term_timeout_seconds: float = 30.0   # each long-term search or store


@dataclass(frozen=True)
class SlackConfig:
    """Slack front-end configuration (optional)."""
    bot_token: str | None
    app_token: str | None
    signing_secret: str | None

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.app_token)


@dataclass(frozen=True)
class Config:
    """Root configuration object."""
    llm: LLMConfig
    mcp: MCPConfig
    memory: MemoryConfig
    pipeline: PipelineConfig
    slack: SlackConfig
    log_level: str


def _validate_timeouts(pipeline: PipelineConfig) -> None:
    """Reject stage timeouts that would not fire before the request deadline."""
    stage_timeouts = {
        "INTENT_TIMEOUT_SECONDS": pipeline.intent_timeout_seconds,
        "SELECTION_TIMEOUT_SECONDS": pipeline.selection_timeout_seconds,
        "TOOL_TIMEOUT_SECONDS": pipeline.tool_timeout_seconds,
        "SYNTHESIS_TIMEOUT_SECONDS": pipeline.synthesis_timeout_seconds,
        "CHAT_TIMEOUT_SECONDS": pipeline.chat_timeout_seconds,
        "LONG_TERM_TIMEOUT_SECONDS": pipeline.long_term_timeout_seconds,
    }
    for name, value in stage_timeouts.items():
        if value >= pipeline.request_timeout_seconds:
            raise ValueError(
                f"{name} ({value}s) must be shorter than "
                f"REQUEST_TIMEOUT_SECONDS ({pipeline.request_timeout_seconds}s)"
            )


def load_config() -> Config:
    """
    Load and validate all configuration from the environment.

    Raises:
        ValueError: If required configuration is missing or inconsistent
    """
    load_dotenv()

    project_root = Path(__file__).parent.parent.parent

    vector_dir = os.getenv("VECTOR_STORE_DIR")

    pipeline = PipelineConfig(
        request_timeout_seconds=_optional_float("REQUEST_TIMEOUT_SECONDS", 300.0),
        intent_timeout_seconds=_optional_float("INTENT_TIMEOUT_SECONDS", 10.0),
        selection_timeout_seconds=_optional_float("SELECTION_TIMEOUT_SECONDS", 30.0),
        tool_timeout_seconds=_optional_float("TOOL_TIMEOUT_SECONDS", 30.0),
        synthesis_timeout_seconds=_optional_float("SYNTHESIS_TIMEOUT_SECONDS", 240.0),
        chat_timeout_seconds=_optional_float("CHAT_TIMEOUT_SECONDS", 30.0),
        max_context_tokens=_optional_int("MAX_CONTEXT_TOKENS", 4000),
        tool_concurrency=_optional_int("TOOL_CONCURRENCY", 1),
        long_term_timeout_seconds=_optional_float("LONG_TERM_TIMEOUT_SECONDS", 30.0),
    )
    _validate_timeouts(pipeline)

    return Config(
        llm=LLMConfig(
            api_key=_required("LLM_API_KEY"),
            base_url=os.getenv("LLM_BASE_URL"),
            model=_optional("LLM_MODEL", "gpt-4o-mini"),
            embedding_model=_optional("EMBEDDING_MODEL", "text-embedding-3-small"),
        ),
        mcp=MCPConfig(
            server_url=os.getenv("MCP_SERVER_URL"),
            timeout_seconds=_optional_float("MCP_TIMEOUT_SECONDS", 30.0),
            catalog_refresh_minutes=_optional_int("MCP_CATALOG_REFRESH_MINUTES", 10),
        ),
        memory=MemoryConfig(
            short_term_max_items=_optional_int("SHORT_TERM_MAX_ITEMS", 1000),
            short_term_ttl_hours=_optional_float("SHORT_TERM_TTL_HOURS", 24.0),
            working_max_size=_optional_int("WORKING_MAX_SIZE", 100),
            compression_threshold=_optional_int("COMPRESSION_THRESHOLD", 10),
            vector_store_dir=project_root / vector_dir if vector_dir else None,
            sweep_interval_minutes=_optional_int("MEMORY_SWEEP_INTERVAL_MINUTES", 15),
        ),
        pipeline=pipeline,
        slack=SlackConfig(
            bot_token=os.getenv("SLACK_BOT_TOKEN"),
            app_token=os.getenv("SLACK_APP_TOKEN"),
            signing_secret=os.getenv("SLACK_SIGNING_SECRET"),
        ),
        log_level=_optional("LOG_LEVEL", "info"),
    )


# ==============================================================================
# Singleton
# ==============================================================================

_config_instance: Config | None = None


def get_config() -> Config:
    """Get the configuration, loading it on first access."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration (used by tests)."""
    global _config_instance
    _config_instance = None
