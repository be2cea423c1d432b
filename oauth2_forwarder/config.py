"""
Proxy and client configuration.

Proxy settings come from, in decreasing priority: command line arguments,
environment variables, config.yaml in the config directory, built-in defaults.
"""

import os
import re
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Tuple

import yaml

from .constants import (CAPTURE_TIMEOUT, COMPLETION_TTL, DEFAULT_PROXY_HOST, ENV_DEBUG, ENV_LOG_LEVEL,
                        ENV_PASSTHROUGH, ENV_PORT, ENV_TTL)
from .logger import LEVELS
from .paths import configFilePath
from .utils import ConfigError, envFlag


@dataclass
class ProxyConfig:
    host: str = DEFAULT_PROXY_HOST
    port: int = 0
    completion_ttl: float = COMPLETION_TTL
    capture_timeout: float = CAPTURE_TIMEOUT
    passthrough: bool = False
    log_level: str = 'info'

    @classmethod
    def load(cls, overrides: Optional[Dict[str, Any]] = None, path: Optional[str] = None) -> 'ProxyConfig':
        """
        Build the effective configuration.

        Args:
            overrides: Values from the command line, None entries are ignored
            path: config.yaml to read, the one in the config directory by default

        Raises:
            ConfigError: If any source holds an unusable value
        """
        values = {}
        values.update(_load_file(path if path is not None else configFilePath()))
        values.update(_load_env())
        values.update({k: v for k, v in (overrides or {}).items() if v is not None})

        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        self.port = _to_port(self.port, 'port')
        self.completion_ttl = _to_seconds(self.completion_ttl, 'completion_ttl')
        self.capture_timeout = _to_seconds(self.capture_timeout, 'capture_timeout')
        if not isinstance(self.passthrough, bool):
            raise ConfigError(f"passthrough must be true or false, got {self.passthrough!r}")
        if str(self.log_level).lower() not in LEVELS:
            raise ConfigError(f"Unknown log level: {self.log_level}")
        self.log_level = str(self.log_level).lower()
        if not self.host:
            raise ConfigError("host must not be empty")


def _to_port(value, name) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if port < 0 or port > 65535:
        raise ConfigError(f"Not a valid port: {port}")
    return port


def _to_seconds(value, name) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number of seconds, got {value!r}")
    if seconds <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return seconds


def _load_file(path: str) -> Dict[str, Any]:
    if not os.path.isfile(path):
        return {}
    try:
        with open(path, 'rb') as f:
            data = yaml.safe_load(f.read())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _load_env() -> Dict[str, Any]:
    values = {}
    if os.environ.get(ENV_PORT):
        values['port'] = os.environ[ENV_PORT]
    if os.environ.get(ENV_TTL):
        values['completion_ttl'] = os.environ[ENV_TTL]
    if os.environ.get(ENV_PASSTHROUGH):
        values['passthrough'] = envFlag(ENV_PASSTHROUGH)
    if os.environ.get(ENV_LOG_LEVEL):
        values['log_level'] = os.environ[ENV_LOG_LEVEL]
    if envFlag(ENV_DEBUG):
        values['log_level'] = 'debug'
    return values


_SERVER_INFO = re.compile(r'^(.+):(\d+)$')


def parse_server_info(info: str) -> Tuple[str, int]:
    """
    Parse the client's "host:port" server setting.

    Raises:
        ConfigError: If the value is not host:port or the port is out of range
    """
    match = _SERVER_INFO.match(info or '')
    if not match:
        raise ConfigError("Invalid server info format, must be host:port")
    host, port = match.group(1), int(match.group(2))
    if port > 65535:
        raise ConfigError(f"Not a valid port: {port}")
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    return host, port
