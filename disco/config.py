"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from .transport import DEFAULT_MAX_DATAGRAM_SIZE, DEFAULT_TTL
from .discovery import DEFAULT_QUERY_TIMEOUT


@dataclass
class Config:
    """
    Discovery configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (DISCO_*)
    2. Config file (JSON)
    3. Default values
    """
    # Network
    group_address: str = '224.0.0.1:9999'
    source_address: str = ''
    interface: Optional[str] = None
    ttl: int = DEFAULT_TTL

    # Limits
    max_datagram_size: int = DEFAULT_MAX_DATAGRAM_SIZE
    query_timeout: float = DEFAULT_QUERY_TIMEOUT

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))

        config = cls()

        # Network
        config.group_address = os.getenv('DISCO_GROUP', config.group_address)
        config.source_address = os.getenv('DISCO_SOURCE', config.source_address)
        config.interface = os.getenv('DISCO_INTERFACE') or config.interface
        config.ttl = int(os.getenv('DISCO_TTL', config.ttl))

        # Limits
        config.max_datagram_size = int(
            os.getenv('DISCO_MAX_DATAGRAM_SIZE', config.max_datagram_size)
        )
        config.query_timeout = float(os.getenv('DISCO_QUERY_TIMEOUT', config.query_timeout))

        # Logging
        config.log_level = os.getenv('DISCO_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.group_address = data.get('group_address', config.group_address)
        config.source_address = data.get('source_address', config.source_address)
        config.interface = data.get('interface', config.interface)
        config.ttl = data.get('ttl', config.ttl)

        # Limits
        config.max_datagram_size = data.get('max_datagram_size', config.max_datagram_size)
        config.query_timeout = data.get('query_timeout', config.query_timeout)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'group_address': self.group_address,
            'source_address': self.source_address,
            'interface': self.interface,
            'ttl': self.ttl,
            'max_datagram_size': self.max_datagram_size,
            'query_timeout': self.query_timeout,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()
    defaults = Config()

    # Merge (env takes precedence for non-default values)
    for key in defaults.to_dict():
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "group_address": "224.0.0.1:9999",
  "source_address": "192.168.1.20:8080",
  "interface": null,
  "ttl": 1,
  "max_datagram_size": 8192,
  "query_timeout": 3.0,
  "log_level": "INFO"
}
"""
