"""
Monthly Cost Report - Configuration Management

Supports loading configuration from:
1. YAML config file (--config)
2. Environment variables (MCOST_*)
3. Command-line arguments (highest priority)

Config file example:
```yaml
years: "2023:2025"
sort: desc
subscription: ${MCOST_SUBSCRIPTION}
show_currency: true
output: "./reports"
```
"""
import logging
import os
import re
import stat
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)


# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    './monthly-cost.yaml',
    './monthly-cost.yml',
    '~/.monthly-cost/config.yaml',
]

# Mapping from config keys to env vars
ENV_VAR_MAPPING = {
    'years': 'MCOST_YEARS',
    'sort': 'MCOST_SORT',
    'subscription': 'MCOST_SUBSCRIPTION',
    'tenant_id': 'MCOST_TENANT_ID',
    'show_currency': 'MCOST_SHOW_CURRENCY',
    'output': 'MCOST_OUTPUT',
    'log_level': 'MCOST_LOG_LEVEL',
}

BOOLEAN_KEYS = ('show_currency', 'export', 'force_reauth')

# argparse attribute -> config key
ARG_MAPPING = {
    'years': 'years',
    'sort': 'sort',
    'subscription_id': 'subscription',
    'tenant_id': 'tenant_id',
    'show_currency': 'show_currency',
    'export': 'export',
    'force_reauth': 'force_reauth',
    'output': 'output',
    'log_level': 'log_level',
}


def _substitute_env_vars(value: Any) -> Any:
    """Substitute ${ENV_VAR} patterns in string values."""
    if isinstance(value, str):
        # Pattern: ${VAR_NAME} or ${VAR_NAME:-default}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            default = match.group(2) or ''
            return os.environ.get(var_name, default)

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes')


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    file_mode = path.stat().st_mode
    if file_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} has loose permissions. "
                       f"Consider: chmod 600 {config_path}")

    logger.info(f"Loading config from {path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    config = _substitute_env_vars(config)
    # Quoting is optional in YAML, so `years: 2024` arrives as an int
    if 'years' in config and config['years'] is not None:
        config['years'] = str(config['years'])
    return config


def find_default_config() -> Optional[str]:
    """Find a config file in default locations."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_env_config() -> Dict[str, Any]:
    """Load configuration from environment variables."""
    config: Dict[str, Any] = {}

    for config_key, env_var in ENV_VAR_MAPPING.items():
        value = os.environ.get(env_var)
        if value is not None:
            config[config_key] = _to_bool(value) if config_key in BOOLEAN_KEYS else value

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Merge multiple config dicts. Later configs override earlier ones."""
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_configs(result[key], value)
            elif value is not None:
                result[key] = value

    return result


def args_to_config(args) -> Dict[str, Any]:
    """
    Convert argparse args to config dict format.

    Flags left at their defaults (None, or False for store_true switches)
    are omitted so lower-priority sources still apply.
    """
    config: Dict[str, Any] = {}
    for arg_name, config_key in ARG_MAPPING.items():
        value = getattr(args, arg_name, None)
        if value is None or value is False:
            continue
        config[config_key] = value
    return config


def config_to_args(config: Dict[str, Any], args) -> None:
    """Apply merged config values back onto the argparse namespace."""
    for arg_name, config_key in ARG_MAPPING.items():
        if config_key not in config:
            continue
        value = config[config_key]
        if config_key in BOOLEAN_KEYS:
            value = _to_bool(value)
        setattr(args, arg_name, value)


def load_config(args) -> Dict[str, Any]:
    """
    Load configuration from all sources and merge them.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file (--config or default location)
    3. Environment variables

    Returns merged config dict.
    """
    configs = []

    env_config = load_env_config()
    if env_config:
        logger.debug("Loaded config from environment variables")
        configs.append(env_config)

    config_path = getattr(args, 'config', None)
    if config_path:
        configs.append(load_config_file(config_path))
    else:
        default_config = find_default_config()
        if default_config:
            logger.info(f"Found default config file: {default_config}")
            configs.append(load_config_file(default_config))

    configs.append(args_to_config(args))

    merged = merge_configs(*configs)
    config_to_args(merged, args)

    return merged


def generate_sample_config() -> str:
    """Generate a sample config file content."""
    return '''# Monthly Cost Report Configuration
#
# Environment variable substitution supported:
#   ${VAR_NAME}           - required env var
#   ${VAR_NAME:-default}  - env var with default value

# Year or year range to report (YYYY or YYYY:YYYY). Default: current year
# years: "2023:2025"

# Row order: asc or desc
sort: asc

# Subscription to report on (leave empty to choose interactively)
# subscription: ${MCOST_SUBSCRIPTION}

# Tenant to sign in to (uses the matching saved Azure CLI session if present)
# tenant_id: "xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx"

# Show the currency column
show_currency: false

# Copy the table to the clipboard as tab-delimited text
export: false

# Directory for JSON / CSV report files and the log file
# output: "./reports"

# Logging level: DEBUG, INFO, WARNING, ERROR
log_level: INFO
'''
