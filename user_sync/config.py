"""
Configuration loading and management for External User Sync.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'config.yaml'

PAGE_FAILURE_POLICIES = ('fallback', 'partial')


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for deployment-specific and sensitive fields
    ENV_OVERRIDES = {
        'directory.base_url': 'REQRES_API_URL',
        'directory.api_key': 'REQRES_API_KEY',
        'database.url': 'DATABASE_URL',
        'import.placeholder_password': 'EXTERNAL_USER_PASSWORD',
    }

    DEFAULTS = {
        'directory': {
            'module': 'reqres',
            'base_url': 'https://reqres.in/api',
            'timeout_seconds': 10,
            'user_agent': 'Mozilla/5.0 (compatible; UserManagementSystem/1.0)',
            'api_key': None,
            'verify_ssl': True,
        },
        'sync': {
            'max_concurrency': 5,
            'page_failure_policy': 'fallback',
        },
        'import': {
            'placeholder_password': 'password123',
            'hash_scheme': 'bcrypt',
            'hash_rounds': 10,
        },
        'database': {
            'url': 'sqlite:///users.db',
        },
        'logging': {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7,
            'console_output': True,
            'console_level': 'WARNING',
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.explicit_path = bool(config_path or os.getenv('CONFIG_PATH'))
        self.config_path = config_path or os.getenv('CONFIG_PATH', DEFAULT_CONFIG_PATH)
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        A missing file is only an error when the path was given explicitly;
        otherwise every setting falls back to its default.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            if self.explicit_path:
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            logger.info(f"No configuration file at {self.config_path}, using defaults")
            self.config = {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        # Defaults first so overrides and validation see the full tree
        self._apply_defaults()

        self._apply_env_overrides()

        self._validate()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if key not in current or current[key] is None:
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        for section, defaults in self.DEFAULTS.items():
            section_config = self.config.get(section)
            if section_config is None:
                section_config = self.config[section] = {}
            if not isinstance(section_config, dict):
                raise ConfigurationError(f"Configuration section '{section}' must be a mapping")
            for key, value in defaults.items():
                section_config.setdefault(key, value)

    def _validate(self):
        """Validate configuration values."""
        errors = []

        directory = self.config['directory']
        if not directory.get('module'):
            errors.append("Missing required directory field: module")

        base_url = directory.get('base_url') or ''
        parsed = urlparse(str(base_url))
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            errors.append(f"directory.base_url must be an http(s) URL, got '{base_url}'")

        timeout = directory.get('timeout_seconds')
        if not _is_number(timeout) or timeout <= 0:
            errors.append(f"directory.timeout_seconds must be a positive number, got {timeout!r}")

        sync = self.config['sync']
        concurrency = sync.get('max_concurrency')
        if not _is_int(concurrency) or concurrency < 1:
            errors.append(f"sync.max_concurrency must be an integer >= 1, got {concurrency!r}")

        policy = sync.get('page_failure_policy')
        if policy not in PAGE_FAILURE_POLICIES:
            errors.append(f"sync.page_failure_policy must be one of "
                          f"{', '.join(PAGE_FAILURE_POLICIES)}, got {policy!r}")

        import_config = self.config['import']
        if not import_config.get('placeholder_password'):
            errors.append("Missing required import field: placeholder_password")
        if not import_config.get('hash_scheme'):
            errors.append("Missing required import field: hash_scheme")

        if not self.config['database'].get('url'):
            errors.append("Missing required database field: url")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
