"""
Agent configuration management utilities.

This module loads agent settings from a YAML configuration file at the
project root. Each top-level key names one agent.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from roomflow.core.errors import ConfigurationError

from .settings import AgentSettings

logger = logging.getLogger(__name__)


def get_config_path() -> Path:
    """
    Get the path to the agent configuration file.

    Looks for agent_config.yaml in the current working directory (project root).
    """
    return Path(os.getcwd()) / "agent_config.yaml"


def load_agent_config(agent_key: str) -> AgentSettings:
    """
    Load one agent's settings from the YAML file at project root.

    Args:
        agent_key: The key identifying the agent in the config file

    Returns:
        Validated AgentSettings

    Raises:
        FileNotFoundError: If agent_config.yaml doesn't exist
        ValueError: If the agent is missing or its settings are invalid
        RuntimeError: If the file cannot be read or parsed
    """
    config_path = get_config_path()
    logger.debug(f"Loading config from: {config_path}")

    if not config_path.exists():
        raise FileNotFoundError(
            f"agent_config.yaml not found at {config_path}. "
            "Copy agent_config.yaml.example to agent_config.yaml and configure your agents."
        )

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise RuntimeError(f"Error loading agent config: {e}")

    agent_config = config.get(agent_key) if isinstance(config, dict) else None
    if not agent_config:
        raise ConfigurationError(
            f"Agent '{agent_key}' not found in {config_path}. "
            f"Please add the agent configuration."
        )

    try:
        return AgentSettings.model_validate(agent_config)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ConfigurationError(
            f"Invalid settings for agent '{agent_key}': {fields}. "
            f"Please fix the agent configuration in {config_path}"
        ) from e
