#!/usr/bin/env python3
"""
Configuration loader and validator for the Linear issue-tree importer.

Loads an optional import_config.yaml, merges it over built-in defaults,
applies environment variable overrides, and reports misconfiguration with
clear error messages.
"""

import os
import sys
import copy
from pathlib import Path
from typing import Dict, Any, Optional
import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


DEFAULTS: Dict[str, Any] = {
    'linear': {
        'api_url': 'https://api.linear.app/graphql',
        'api_key': '',
        'timeout': 30,
        'max_retries': 3,
        'retry_delay': 1.0,
    },
    'import': {
        'snapshot_limit': 1000,
        'page_size': 250,
    },
    'logging': {
        'debug': False,
        'log_dir': None,
    },
}


class ImportConfig:
    """Importer configuration (defaults < YAML file < environment)."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration loader.

        Args:
            config_path: Path to import_config.yaml. When omitted, the
                LINEAR_IMPORT_CONFIG variable is consulted, then the nearest
                .sync/config/import_config.yaml above the current directory.
                Running without any config file is allowed.
        """
        if config_path is None:
            env_path = os.getenv('LINEAR_IMPORT_CONFIG')
            if env_path:
                config_path = Path(env_path)
            else:
                config_path = self._discover()
            explicit = bool(env_path)
        else:
            explicit = True

        self.config_path: Optional[Path] = Path(config_path) if config_path else None
        self.config: Dict[str, Any] = copy.deepcopy(DEFAULTS)
        self._load(explicit)

    @staticmethod
    def _discover() -> Optional[Path]:
        """Find .sync/config/import_config.yaml walking up from cwd."""
        current_dir = Path.cwd()
        while current_dir != current_dir.parent:
            candidate = current_dir / '.sync' / 'config' / 'import_config.yaml'
            if candidate.exists():
                return candidate
            current_dir = current_dir.parent
        return None

    def _load(self, explicit: bool) -> None:
        """Load YAML file (if any), apply env overrides, validate."""
        if self.config_path is not None:
            if not self.config_path.exists():
                if explicit:
                    raise ConfigError(f"Configuration file not found: {self.config_path}")
            else:
                try:
                    with open(self.config_path, 'r', encoding='utf-8') as f:
                        loaded = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(
                        f"Invalid YAML in configuration file: {self.config_path}\n"
                        f"Error: {e}"
                    )
                except OSError as e:
                    raise ConfigError(
                        f"Failed to read configuration file: {self.config_path}\n"
                        f"Error: {e}"
                    )

                if not isinstance(loaded, dict):
                    raise ConfigError(
                        f"Configuration file must contain a mapping: {self.config_path}"
                    )
                self._merge(self.config, loaded)

        self._substitute_env_vars()
        self._validate()

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        """Deep merge override into base in place."""
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            else:
                base[key] = value

    def _substitute_env_vars(self) -> None:
        """Environment variables take precedence over the file."""
        linear = self.config.setdefault('linear', {})

        api_key = os.getenv('LINEAR_API_KEY')
        if api_key:
            linear['api_key'] = api_key

        api_url = os.getenv('LINEAR_API_URL')
        if api_url:
            linear['api_url'] = api_url

        timeout = os.getenv('LINEAR_TIMEOUT')
        if timeout:
            try:
                linear['timeout'] = int(timeout)
            except ValueError:
                raise ConfigError(f"LINEAR_TIMEOUT must be an integer (got: '{timeout}')")

        retries = os.getenv('LINEAR_MAX_RETRIES')
        if retries:
            try:
                linear['max_retries'] = int(retries)
            except ValueError:
                raise ConfigError(f"LINEAR_MAX_RETRIES must be an integer (got: '{retries}')")

    def _validate(self) -> None:
        """Validate configuration values."""
        errors = []

        linear = self.config.get('linear') or {}
        if not isinstance(linear.get('api_url'), str) or not linear['api_url'].startswith('http'):
            errors.append(f"linear.api_url must be an http(s) URL (got: '{linear.get('api_url')}')")

        timeout = linear.get('timeout')
        if not isinstance(timeout, int) or isinstance(timeout, bool) or timeout < 1:
            errors.append("linear.timeout must be a positive integer")

        max_retries = linear.get('max_retries')
        if not isinstance(max_retries, int) or isinstance(max_retries, bool) or max_retries < 0:
            errors.append("linear.max_retries must be a non-negative integer")

        retry_delay = linear.get('retry_delay')
        if not isinstance(retry_delay, (int, float)) or isinstance(retry_delay, bool) or retry_delay < 0:
            errors.append("linear.retry_delay must be a non-negative number")

        section = self.config.get('import') or {}
        for field in ('snapshot_limit', 'page_size'):
            value = section.get(field)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(f"import.{field} must be a positive integer")

        page_size = section.get('page_size')
        if isinstance(page_size, int) and page_size > 250:
            errors.append("import.page_size cannot exceed 250 (Linear API limit)")

        if errors:
            error_msg = "Configuration validation failed:\n\n" + "\n".join(f"  • {e}" for e in errors)
            raise ConfigError(error_msg)

    def require_api_key(self) -> str:
        """
        Return the Linear API key.

        Raises:
            ConfigError: If no key is configured
        """
        api_key = self.get('linear.api_key')
        if not api_key:
            raise ConfigError(
                "LINEAR_API_KEY environment variable is required.\n"
                "Get your API key from: Linear Settings > API > Create key\n"
                "Then run: export LINEAR_API_KEY=\"lin_api_xxxxx\""
            )
        return api_key

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Dot-notation key (e.g., 'linear.timeout', 'import.page_size')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value: Any = self.config

        for k in key.split('.'):
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

            if value is None:
                return default

        return value

    def __getitem__(self, key: str) -> Any:
        """Get configuration section by key."""
        return self.config[key]

    def __repr__(self) -> str:
        return f"ImportConfig(path={self.config_path}, api_url={self.get('linear.api_url')})"


def load_config(config_path: Optional[Path] = None) -> ImportConfig:
    """
    Load and validate importer configuration.

    Args:
        config_path: Path to import_config.yaml (auto-detected if None)

    Returns:
        Validated ImportConfig instance

    Raises:
        ConfigError: If configuration is invalid
    """
    return ImportConfig(config_path)


if __name__ == '__main__':
    try:
        config = load_config()
        print(f"✓ Configuration valid: {config.config_path or '(defaults)'}")
        print(f"  API: {config.get('linear.api_url')}")
        print(f"  Snapshot limit: {config.get('import.snapshot_limit')}")
    except ConfigError as e:
        print(f"✗ Configuration error:\n{e}", file=sys.stderr)
        sys.exit(1)
