# ============================================
# SlippageGuard - src/slippage_guard/utils/config_loader.py
# Configuration management for slippage limits and logging
# ============================================

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

class ConfigValidationError(Exception):
    """Raised when a configuration file is unreadable or misses a required section"""
    pass

class ConfigLoader:
    """
    Configuration management for SlippageGuard

    Features:
    - YAML files with ${VAR} / ${VAR:default} environment substitution
    - Config directory from the constructor, SLIPPAGE_GUARD_CONFIG_DIR or <project>/config
    - Default files written on first use
    - Dot-path access to nested values
    """

    CONFIG_FILES = [
        "slippage_config.yaml",
        "logging.yaml"
    ]

    REQUIRED_SECTIONS = {
        'slippage_config': ['slippage'],
    }

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        env_dir = os.getenv("SLIPPAGE_GUARD_CONFIG_DIR")
        if config_dir:
            self.config_dir = Path(config_dir)
        elif env_dir:
            self.config_dir = Path(env_dir)
        else:
            self.config_dir = self._find_project_root() / "config"

        self.configs: Dict[str, Dict[str, Any]] = {}

        # logger.py imports this module, so only the stdlib logger is available here
        self.logger = logging.getLogger(__name__)

        self._ensure_config_directory()
        self._load_all_configs()

    def _find_project_root(self) -> Path:
        """Find project root directory by looking for key files"""
        current = Path(__file__).resolve()

        markers = ['setup.py', 'pyproject.toml', '.git', 'requirements.txt']

        for parent in current.parents:
            if any((parent / marker).exists() for marker in markers):
                return parent

        return Path.cwd()

    def _ensure_config_directory(self):
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.warning(f"Config directory {self.config_dir} is not writable: {e}")

    def _load_all_configs(self):
        for config_file in self.CONFIG_FILES:
            config_name = Path(config_file).stem
            try:
                self.configs[config_name] = self._read_config_file(config_file, config_name)
                self.logger.debug(f"Loaded configuration: {config_name}")
            except FileNotFoundError:
                self._create_default_config(config_file, config_name)
            except ConfigValidationError as e:
                self.logger.warning(f"Failed to load {config_file}: {e}; using defaults")
                self.configs[config_name] = self._defaults()[config_file]

    def _read_config_file(self, filename: str, config_name: str) -> Dict[str, Any]:
        """Parse one YAML file, substitute environment values and check required sections"""
        config_path = self.config_dir / filename

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML in {filename}: {e}")

        config_data = self._process_environment_variables(config_data)

        for key in self.REQUIRED_SECTIONS.get(config_name, []):
            if key not in config_data:
                raise ConfigValidationError(f"Missing required key '{key}' in {config_name}")

        return config_data

    def _process_environment_variables(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process environment variable substitutions in config

        Supports formats:
        - ${VAR_NAME}
        - ${VAR_NAME:default_value}
        """
        def process_value(value):
            if isinstance(value, str):
                if value.startswith('${') and value.endswith('}'):
                    env_spec = value[2:-1]

                    if ':' in env_spec:
                        var_name, default_value = env_spec.split(':', 1)
                        return os.getenv(var_name, default_value)
                    else:
                        return os.getenv(env_spec, value)

                return value
            elif isinstance(value, dict):
                return {k: process_value(v) for k, v in value.items()}
            elif isinstance(value, list):
                return [process_value(item) for item in value]
            else:
                return value

        return process_value(config_data)

    def _create_default_config(self, filename: str, config_name: str):
        """Use the built-in defaults and try to write them out for editing"""
        defaults = self._defaults()[filename]
        self.configs[config_name] = defaults

        config_path = self.config_dir / filename
        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                yaml.dump(defaults, f, default_flow_style=False, indent=2, sort_keys=False)
            self.logger.info(f"Created default configuration: {config_path}")
        except OSError as e:
            self.logger.warning(f"Could not write default config {filename}: {e}")

    def _defaults(self) -> Dict[str, Dict[str, Any]]:
        return {
            "slippage_config.yaml": self._get_slippage_config_defaults(),
            "logging.yaml": self._get_logging_config_defaults()
        }

    def get_config(self, config_name: str) -> Dict[str, Any]:
        """Copy of a whole configuration; empty when the name is unknown"""
        if config_name not in self.configs:
            self.logger.warning(f"Configuration '{config_name}' not found")
            return {}

        return self.configs[config_name].copy()

    def get(self, config_name: str, key_path: str, default: Any = None) -> Any:
        """
        Get specific configuration value using dot notation

        Args:
            config_name: Name of configuration
            key_path: Dot-separated path to key (e.g., 'slippage.defaults.max_slippage_percent')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self.configs.get(config_name, {})

        try:
            for key in key_path.split('.'):
                current = current[key]
            return current
        except (KeyError, TypeError):
            return default

    # Default configuration templates
    def _get_slippage_config_defaults(self) -> Dict[str, Any]:
        return {
            'slippage': {
                'defaults': {
                    'max_slippage_percent': 0.5,
                    'tolerance_level': 'MODERATE',
                    'enable_dynamic_slippage': True,
                    'max_execution_time_ms': 5000
                },
                'protection': {
                    'default_volatility': 1.0,
                    'deadline_warning_fraction': 0.9,
                    'statistics_days_back': 7,
                    'export_statistics_days': 30
                },
                'reports': {
                    'max_reports_in_memory': 1000
                },
                'order_sizing': {
                    'min_chunk_fraction': 0.1,
                    'convergence_fraction': 0.05,
                    'default_max_slippage_percent': 0.5
                }
            }
        }

    def _get_logging_config_defaults(self) -> Dict[str, Any]:
        return {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'simple': {
                    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                    'datefmt': '%Y-%m-%d %H:%M:%S'
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': 'INFO',
                    'formatter': 'simple',
                    'stream': 'ext://sys.stdout'
                }
            },
            'loggers': {
                'slippage_guard': {'level': 'INFO', 'handlers': ['console'], 'propagate': True}
            }
        }

# Global configuration instance
config = ConfigLoader()

def get_config(config_name: str) -> Dict[str, Any]:
    """Get complete configuration by name"""
    return config.get_config(config_name)

def get_slippage_setting(key_path: str, default: Any = None) -> Any:
    """Value under the top-level 'slippage' section of slippage_config"""
    return config.get('slippage_config', f'slippage.{key_path}', default)
