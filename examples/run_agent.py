#!/usr/bin/env python3
"""
Run roomflow agents.

Usage:
    python examples/run_agent.py                    # Default: helper
    python examples/run_agent.py --agent critic
    python examples/run_agent.py --agent helper --agent critic

Setup:
1. Copy .env.example to .env and configure:
   - ROOMFLOW_SERVER_URL (room server, overrides server_url)
   - LLM_BASE_URL, LLM_MODEL, LLM_API_KEY (fill settings left empty in the YAML)

2. Copy agent_config.yaml.example to agent_config.yaml and configure agents
"""

import argparse
import asyncio
import logging
import os

from dotenv import load_dotenv

from roomflow import AgentRuntime, load_agent_config
from setup_logging import setup_logging

# Load environment from .env
load_dotenv()

ENV_OVERRIDES = {
    "llm_base_url": "LLM_BASE_URL",
    "llm_api_key": "LLM_API_KEY",
    "llm_model": "LLM_MODEL",
}


def apply_env_overrides(settings):
    """Fill empty LLM settings from the environment; ROOMFLOW_SERVER_URL always wins."""
    update = {
        field: os.environ[var]
        for field, var in ENV_OVERRIDES.items()
        if not getattr(settings, field) and os.getenv(var)
    }
    if os.getenv("ROOMFLOW_SERVER_URL"):
        update["server_url"] = os.environ["ROOMFLOW_SERVER_URL"]
    return settings.model_copy(update=update) if update else settings


async def main():
    parser = argparse.ArgumentParser(description="Run roomflow agents in a chat room")
    parser.add_argument(
        "--agent",
        "-g",
        action="append",
        help="Agent key from agent_config.yaml (repeatable, default: helper)",
    )
    parser.add_argument(
        "--log-level",
        "-l",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    args = parser.parse_args()

    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO))
    logger = logging.getLogger(__name__)

    runtimes = []
    for key in args.agent or ["helper"]:
        try:
            settings = load_agent_config(key)
        except Exception as e:
            parser.error(f"Failed to load agent config '{key}': {e}")

        settings = apply_env_overrides(settings)

        runtime = AgentRuntime.from_settings(settings)
        await runtime.start()
        logger.info(f"Agent {settings.agent_name} joined {settings.server_url}")
        runtimes.append(runtime)

    try:
        await asyncio.Event().wait()
    finally:
        for runtime in runtimes:
            await runtime.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
