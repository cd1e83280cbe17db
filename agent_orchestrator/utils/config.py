"""
Configuration management for the agent orchestrator.
"""

import os
import json
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from pathlib import Path

from .logging import get_logger, resolve_log_level

logger = get_logger(__name__)


class OrchestrationConfig(BaseModel):
    """Configuration for the orchestration system."""
    log_level: str = Field(default="INFO")
    json_logging: bool = Field(default=False)
    handler_thread_pool_size: int = Field(default=8, ge=1, le=256)
    default_agent_max_concurrent_tasks: Optional[int] = Field(default=None, ge=1)
    max_retained_executions: int = Field(default=1000, ge=1)
    execution_retention_seconds: Optional[float] = Field(default=None, gt=0)
    dispatch_poll_interval_seconds: float = Field(default=0.05, gt=0, le=60)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        resolve_log_level(v)
        return v.upper()


def _env_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


def load_config_from_env() -> OrchestrationConfig:
    """
    Load configuration from environment variables.

    Returns:
        OrchestrationConfig: Configuration object with values from environment
    """
    config_data = {}

    if os.getenv("ORCHESTRATOR_LOG_LEVEL"):
        config_data["log_level"] = os.getenv("ORCHESTRATOR_LOG_LEVEL")

    if os.getenv("ORCHESTRATOR_JSON_LOGGING"):
        config_data["json_logging"] = _env_bool(os.getenv("ORCHESTRATOR_JSON_LOGGING"))

    if os.getenv("ORCHESTRATOR_HANDLER_THREADS"):
        config_data["handler_thread_pool_size"] = int(os.getenv("ORCHESTRATOR_HANDLER_THREADS"))

    if os.getenv("ORCHESTRATOR_AGENT_MAX_CONCURRENT_TASKS"):
        config_data["default_agent_max_concurrent_tasks"] = int(
            os.getenv("ORCHESTRATOR_AGENT_MAX_CONCURRENT_TASKS")
        )

    if os.getenv("ORCHESTRATOR_MAX_RETAINED_EXECUTIONS"):
        config_data["max_retained_executions"] = int(os.getenv("ORCHESTRATOR_MAX_RETAINED_EXECUTIONS"))

    if os.getenv("ORCHESTRATOR_EXECUTION_RETENTION_SECONDS"):
        config_data["execution_retention_seconds"] = float(
            os.getenv("ORCHESTRATOR_EXECUTION_RETENTION_SECONDS")
        )

    if os.getenv("ORCHESTRATOR_POLL_INTERVAL_SECONDS"):
        config_data["dispatch_poll_interval_seconds"] = float(
            os.getenv("ORCHESTRATOR_POLL_INTERVAL_SECONDS")
        )

    return OrchestrationConfig(**config_data)


def load_config_from_file(config_path: Optional[Path] = None) -> OrchestrationConfig:
    """
    Load configuration from a JSON file.

    A missing or unreadable file yields the default configuration.
    """
    if config_path is None:
        config_path = Path(os.getenv("ORCHESTRATOR_CONFIG_FILE", "orchestrator.json"))

    if not config_path.exists():
        return OrchestrationConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = json.load(f)
        return OrchestrationConfig(**config_data)
    except Exception as e:
        logger.warning("config_load_failed", path=str(config_path), error=str(e))
        return OrchestrationConfig()


# Global configuration instance
_config: Optional[OrchestrationConfig] = None


def get_config() -> OrchestrationConfig:
    """
    Get the global configuration instance.

    File values are loaded first; environment variables override them.
    """
    global _config
    if _config is None:
        _config = load_config_from_file()
        env_config = load_config_from_env()

        overrides = env_config.model_dump(exclude_unset=True)
        if overrides:
            config_dict = _config.model_dump()
            config_dict.update(overrides)
            _config = OrchestrationConfig(**config_dict)

    return _config


def set_config(config: Optional[OrchestrationConfig]) -> None:
    """
    Set the global configuration instance.

    Passing None makes the next get_config() reload from file and environment.
    """
    global _config
    _config = config
