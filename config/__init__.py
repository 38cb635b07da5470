"""
Configuration Module for the Receipt Extraction Pipeline.

This module provides centralized configuration management using YAML files.
Every threshold used by the pipeline (validator limits, preprocessing level,
parser thresholds, scoring weights, OCR language) is read from settings.yaml,
with documented defaults in the code that reads it.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional


class ConfigurationManager:
    """
    Centralized configuration management for the receipt pipeline.

    This class handles loading and providing access to all configuration
    parameters defined in settings.yaml.

    Attributes:
        config_path (Path): Path to the configuration file.
        config (Dict): Loaded configuration dictionary.

    Example:
        >>> config = ConfigurationManager()
        >>> config.get("ocr.tesseract.lang")
        'eng'
        >>> config.get("parser.min_item_confidence")
        0.6
    """

    _instance: Optional['ConfigurationManager'] = None
    _config: Dict[str, Any] = {}

    def __new__(cls, config_path: Optional[str] = None) -> 'ConfigurationManager':
        """
        Singleton pattern to ensure only one configuration instance exists.

        Args:
            config_path: Optional path to configuration file.

        Returns:
            ConfigurationManager instance.
        """
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_path: Optional path to configuration file.
                        Defaults to config/settings.yaml.
        """
        if self._initialized:
            return

        if config_path is None:
            self.config_path = Path(__file__).parent / "settings.yaml"
        else:
            self.config_path = Path(config_path)

        self._load_config()
        self._initialized = True

    def _load_config(self) -> None:
        """
        Load configuration from YAML file.

        Raises:
            FileNotFoundError: If configuration file doesn't exist.
            yaml.YAMLError: If configuration file is invalid.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(self.config_path, 'r', encoding='utf-8') as f:
            # An empty settings file is a valid "all defaults" configuration
            self._config = yaml.safe_load(f) or {}

        self._resolve_paths()

    def _resolve_paths(self) -> None:
        """
        Resolve relative paths in configuration to absolute paths.
        Uses project root as base directory.
        """
        project_root = Path(__file__).parent.parent

        log_file = self.get("logging.file.path")
        if log_file and not Path(log_file).is_absolute():
            self._config['logging']['file']['path'] = str(project_root / log_file)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "ocr.engine").
            default: Default value if key doesn't exist.

        Returns:
            Configuration value or default.

        Example:
            >>> config.get("validation.min_width")
            600
            >>> config.get("nonexistent.key", "default_value")
            'default_value'
        """
        keys = key.split('.')
        value = self._config

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def get_section(self, key: str) -> Dict[str, Any]:
        """
        Get a whole configuration section as a dictionary.

        Args:
            key: Section key in dot notation (e.g., "validation").

        Returns:
            Copy of the section, or an empty dict if it is missing.
        """
        section = self.get(key, {})
        if not isinstance(section, dict):
            return {}
        return dict(section)

    def get_all(self) -> Dict[str, Any]:
        """
        Get the complete configuration dictionary.

        Returns:
            Complete configuration dictionary.
        """
        return self._config.copy()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    @classmethod
    def reset(cls) -> None:
        """
        Reset the singleton instance.
        Useful for testing or configuration changes.
        """
        cls._instance = None


def get_config(key: str, default: Any = None) -> Any:
    """
    Convenience function to get configuration values.

    Args:
        key: Configuration key in dot notation.
        default: Default value if key doesn't exist.

    Returns:
        Configuration value or default.
    """
    return ConfigurationManager().get(key, default)


def get_section(key: str) -> Dict[str, Any]:
    """
    Convenience function to get a configuration section.

    Args:
        key: Section key in dot notation.

    Returns:
        Section dictionary (empty if missing).
    """
    return ConfigurationManager().get_section(key)


__all__ = ['ConfigurationManager', 'get_config', 'get_section']
