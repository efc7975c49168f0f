"""
Configuration for NetGuard.

Settings come from defaults, then an optional YAML file, then
NETGUARD_<FIELD> environment variables (highest precedence):

    # /etc/netguard/netguard.yaml
    chain_name: WEBGUARD_BLOCK
    command_timeout: 10
    restore_delay: 5
    security_log_path: /var/log/netguard/security_chain.log
    device_store_path: /var/lib/netguard/devices.json

    $ NETGUARD_COMMAND_TIMEOUT=3 netguard list
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

import yaml

from .constants import Naming, Paths, Timeouts

logger = logging.getLogger(__name__)

ENV_PREFIX = "NETGUARD_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(Exception):
    """Configuration file or value is invalid."""


@dataclass
class GuardConfig:
    """Runtime settings."""
    chain_name: str = Naming.LINUX_CHAIN
    linux_rule_prefix: str = Naming.LINUX_RULE_PREFIX
    windows_rule_prefix: str = Naming.WINDOWS_RULE_PREFIX
    command_timeout: float = Timeouts.COMMAND_DEFAULT
    restore_delay: float = Timeouts.RESTORE_DELAY
    self_block_protection: bool = True
    log_level: str = "INFO"
    log_file: Optional[str] = None
    security_log_path: Optional[str] = None
    signing_key_path: Optional[str] = None
    device_store_path: str = Paths.DEVICE_STORE

    def validate(self):
        if self.command_timeout <= 0:
            raise ConfigError("command_timeout must be positive")
        if self.restore_delay < 0:
            raise ConfigError("restore_delay must not be negative")
        if not self.chain_name or len(self.chain_name) > 28:
            # iptables chain names are limited to 28 characters
            raise ConfigError("chain_name must be 1-28 characters")
        if not self.log_level or self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"Unknown log_level: {self.log_level}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(name: str, expected: type, value: Any) -> Any:
    """Convert a YAML or environment value to the field's type."""
    if value is None:
        if expected in (bool, float):
            raise ConfigError(f"{name}: a value is required")
        return None

    if expected is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ConfigError(f"{name}: expected a boolean, got {value!r}")

    if expected is float:
        if isinstance(value, bool):
            raise ConfigError(f"{name}: expected a number, got {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{name}: expected a number, got {value!r}")

    if isinstance(value, (dict, list)):
        raise ConfigError(f"{name}: expected a string, got {type(value).__name__}")
    return str(value)


# Field name -> base type (Optional[str] fields coerce as str)
_FIELD_TYPES = {
    'chain_name': str,
    'linux_rule_prefix': str,
    'windows_rule_prefix': str,
    'command_timeout': float,
    'restore_delay': float,
    'self_block_protection': bool,
    'log_level': str,
    'log_file': str,
    'security_log_path': str,
    'signing_key_path': str,
    'device_store_path': str,
}


def _read_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> GuardConfig:
    """
    Build a GuardConfig.

    Args:
        path: YAML file; when omitted the default path is used if it exists
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigError: unreadable file, unknown key or bad value
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    if path is None and os.path.exists(Paths.CONFIG_FILE):
        path = Paths.CONFIG_FILE

    if path is not None:
        data = _read_yaml(path)
        unknown = set(data) - set(_FIELD_TYPES)
        if unknown:
            raise ConfigError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")
        for key, value in data.items():
            values[key] = _coerce(key, _FIELD_TYPES[key], value)
        logger.debug(f"Loaded configuration from {path}")

    for f in fields(GuardConfig):
        env_value = environ.get(ENV_PREFIX + f.name.upper())
        if env_value is not None:
            values[f.name] = _coerce(f.name, _FIELD_TYPES[f.name], env_value)

    config = GuardConfig(**values)
    config.validate()
    return config
