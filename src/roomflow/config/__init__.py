"""
Agent configuration utilities.

Usage:
    from roomflow.config import load_agent_config

    settings = load_agent_config("my_agent")
"""

from roomflow.config.loader import get_config_path, load_agent_config
from roomflow.config.settings import AgentSettings, ProactiveSettings

__all__ = ["AgentSettings", "ProactiveSettings", "get_config_path", "load_agent_config"]
