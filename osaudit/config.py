"""
OpenStack Inventory Audit - Configuration Management

Settings are merged from three layers, lowest priority first:
1. OSA_* environment variables
2. YAML config file (--config, or the first default location found)
3. Command-line arguments

OpenStack credentials themselves are NOT read from here: openstacksdk picks
them up from clouds.yaml or the usual OS_* environment variables.

Config file example:
```yaml
output: "./reports"
log_level: INFO

openstack:
  cloud: production        # entry in clouds.yaml
  region: RegionOne

report:
  fallback_license: "Generic OS"
  include_snapshots: true
```
"""
import logging
import os
import re
import stat
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .constants import DEFAULT_FALLBACK_LICENSE
from .reconcile import ReportPolicy

logger = logging.getLogger(__name__)


# Searched in order when --config is not given
DEFAULT_CONFIG_PATHS = [
    './osa-config.yaml',
    './osa-config.yml',
    '~/.osa/config.yaml',
    '~/.osa/config.yml',
]

# Dotted config key -> environment variable
ENV_VAR_MAPPING = {
    'output': 'OSA_OUTPUT',
    'log_level': 'OSA_LOG_LEVEL',
    'openstack.cloud': 'OSA_CLOUD',
    'openstack.region': 'OSA_REGION',
    'report.fallback_license': 'OSA_FALLBACK_LICENSE',
    'report.include_snapshots': 'OSA_INCLUDE_SNAPSHOTS',
}

# argparse dest -> dotted config key
ARG_KEY_MAPPING = {
    'output': 'output',
    'log_level': 'log_level',
    'cloud': 'openstack.cloud',
    'region': 'openstack.region',
    'fallback_license': 'report.fallback_license',
}

BOOLEAN_KEYS = ('report.include_snapshots',)

# ${NAME} or ${NAME:-default}
_ENV_REFERENCE = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


def _expand_env_reference(match: "re.Match") -> str:
    return os.environ.get(match.group(1), match.group(2) or '')


def _substitute_env_vars(value: Any) -> Any:
    """Expand ${NAME} references anywhere inside a loaded YAML document."""
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_expand_env_reference, value)
    if isinstance(value, dict):
        return {key: _substitute_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def _get_nested(data: Dict, key_path: str, default: Any = None) -> Any:
    """Look up 'section.key' in a nested dict."""
    node: Any = data
    for part in key_path.split('.'):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def _set_nested(data: Dict, key_path: str, value: Any) -> None:
    """Store value under 'section.key', creating sections as needed."""
    *sections, leaf = key_path.split('.')
    for section in sections:
        data = data.setdefault(section, {})
    data[leaf] = value


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Read a YAML config file and expand its ${VAR} references."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    # Config files may carry ${VAR} references to secrets
    if path.stat().st_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} is readable by group/others; "
                       f"run: chmod 600 {config_path}")

    logger.info(f"Reading config file {path}")

    with open(path) as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping at the top level")

    return _substitute_env_vars(config)


def find_default_config() -> Optional[str]:
    """First existing file among DEFAULT_CONFIG_PATHS, if any."""
    candidates = (Path(p).expanduser() for p in DEFAULT_CONFIG_PATHS)
    return next((str(c) for c in candidates if c.exists()), None)


def load_env_config() -> Dict[str, Any]:
    """Collect the OSA_* variables that are set into a config dict."""
    config: Dict[str, Any] = {}

    for config_key, env_var in ENV_VAR_MAPPING.items():
        if env_var not in os.environ:
            continue
        value: Any = os.environ[env_var]
        if config_key in BOOLEAN_KEYS:
            value = _parse_bool(value)
        _set_nested(config, config_key, value)

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge config dicts; later ones win, None never overrides."""
    merged: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if value is None:
                continue
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = merge_configs(merged[key], value)
            else:
                merged[key] = value

    return merged


def args_to_config(args) -> Dict[str, Any]:
    """Config dict holding only the options given on the command line."""
    config: Dict[str, Any] = {}

    for dest, config_key in ARG_KEY_MAPPING.items():
        value = getattr(args, dest, None)
        if value is not None:
            _set_nested(config, config_key, value)

    # --skip-snapshots only ever turns snapshot statistics off
    if getattr(args, 'skip_snapshots', False):
        _set_nested(config, 'report.include_snapshots', False)

    return config


def config_to_args(config: Dict[str, Any], args) -> None:
    """Write merged settings back onto the argparse namespace."""
    for dest, config_key in ARG_KEY_MAPPING.items():
        value = _get_nested(config, config_key)
        if value is not None:
            setattr(args, dest, value)

    include_snapshots = _get_nested(config, 'report.include_snapshots')
    if include_snapshots is not None:
        args.skip_snapshots = not _parse_bool(include_snapshots)


def load_config(args) -> Dict[str, Any]:
    """
    Merge environment, config file and CLI settings.

    The CLI wins over the config file, which wins over OSA_* variables.
    The merged values are also applied to args; the merged dict is returned.
    """
    layers = []

    env_config = load_env_config()
    if env_config:
        logger.debug(f"Using settings from environment: {sorted(env_config)}")
        layers.append(env_config)

    config_path = getattr(args, 'config', None) or find_default_config()
    if config_path:
        layers.append(load_config_file(config_path))

    layers.append(args_to_config(args))

    merged = merge_configs(*layers)
    config_to_args(merged, args)
    return merged


def policy_from_config(config: Dict[str, Any]) -> ReportPolicy:
    """Build the summary policy from a merged config dict."""
    return ReportPolicy(
        fallback_license=_get_nested(config, 'report.fallback_license', DEFAULT_FALLBACK_LICENSE),
        include_snapshots=_parse_bool(_get_nested(config, 'report.include_snapshots', True)),
    )


def generate_sample_config() -> str:
    """Commented sample config, printed by --generate-config."""
    return '''# OpenStack Inventory Audit Configuration
#
# Values may reference the environment:
#   ${VAR_NAME}           - replaced by the variable (empty if unset)
#   ${VAR_NAME:-default}  - replaced by the variable, or "default"
#
# OpenStack credentials are read by openstacksdk from clouds.yaml or the
# OS_* environment variables (source your openrc file), not from here.

# Directory for the workbook, JSON, CSV and log files
output: "./reports"

# DEBUG, INFO, WARNING or ERROR
log_level: INFO


# -----------------------------------------------------------------------------
# OpenStack connection
# -----------------------------------------------------------------------------
openstack:
  # Named cloud from clouds.yaml (omit to use OS_* environment variables)
  # cloud: production

  # Region to audit (default: the cloud's configured region)
  # region: RegionOne


# -----------------------------------------------------------------------------
# Report policy
# -----------------------------------------------------------------------------
report:
  # Label counted for instances without a license_type metadata value
  # (older reports used "no-OS")
  fallback_license: "Generic OS"

  # Include snapshot count and size in the summary
  include_snapshots: true
'''
