"""API key loading for Nimbus agents.

Keys are read from the environment with this priority:
  1. Environment variables (highest — already set in shell)
  2. ~/.nimbus/keys.env (user-level keys)
  3. .env in current directory (project-level)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from nimbus.schemas.config import AgentConfig

logger = logging.getLogger(__name__)

# Directory for user-level Nimbus configuration
NIMBUS_HOME = Path.home() / ".nimbus"
KEYS_FILE = NIMBUS_HOME / "keys.env"


def load_keys_env(cwd: Path | None = None) -> list[Path]:
    """Load API keys from ~/.nimbus/keys.env and .env into os.environ.

    Existing environment variables are never overwritten, and a key found
    in an earlier file wins over the same key in a later one.

    Returns:
        The files that were found and loaded.
    """
    loaded: list[Path] = []
    for env_file in (KEYS_FILE, (cwd or Path.cwd()) / ".env"):
        if env_file.is_file():
            load_dotenv(env_file, override=False)
            logger.debug("Loaded keys from %s", env_file)
            loaded.append(env_file)
    return loaded


def missing_keys(configs: dict[str, AgentConfig]) -> dict[str, str]:
    """Map agent names to the API key variable they need but lack."""
    return {
        name: config.api_key_env
        for name, config in configs.items()
        if not os.environ.get(config.api_key_env)
    }
